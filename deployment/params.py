import typing
from abc import ABC, abstractmethod
from collections import OrderedDict, namedtuple
from pathlib import Path
from typing import Any, Dict, List, Optional

from eth_abi import is_encodable
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex

from deployment.constants import CONFIRMATION_TIMEOUT
from deployment.registry import ArtifactRecord, DeployedContract, write_artifacts
from deployment.utils import (
    ArtifactStore,
    _load_yaml,
    get_build_dir,
    get_output_dir,
    validate_config,
)

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"

ZERO_ADDRESS = "0x" + "0" * 40


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()


class Resolution(typing.NamedTuple):
    """What a variable can be resolved against at a given point of the run."""

    deployments: typing.Mapping[str, DeployedContract]
    deployer: ChecksumAddress
    # resolve contracts that are not deployed yet to the zero address
    eager: bool = False


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, resolution: Resolution) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, resolution: Resolution) -> Any:
        return resolution.deployer


class Constant(Variable):
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            self.constant_value = context.constants[constant_name]
        except KeyError:
            raise ValueError(f"Constant '{constant_name}' not found in deployment file.")

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()

    def resolve(self, resolution: Resolution) -> Any:
        return self.constant_value


class ContractName(Variable):
    def __init__(self, contract_name: str, context: VariableContext):
        if contract_name not in context.contract_names:
            raise ConstructorParameters.Invalid(
                f"{context.contract_name} depends on {contract_name}, "
                "which is not part of the deployment."
            )
        self.contract_name = contract_name

    def resolve(self, resolution: Resolution) -> Any:
        """Resolves the confirmed address of a previously deployed contract."""
        deployment = resolution.deployments.get(self.contract_name)
        if deployment is not None:
            return deployment.address
        if resolution.eager:
            return ZERO_ADDRESS
        raise ValueError(f"{self.contract_name} has not been deployed yet.")


def _resolve_param(value: Any, resolution: Resolution) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, resolution) for v in value]

    if isinstance(value, Variable):
        return value.resolve(resolution)

    return value  # literally a value


def _resolve_params(parameters: OrderedDict, resolution: Resolution) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, resolution)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable.strip(Variable.VARIABLE_PREFIX)
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        return ContractName(variable, context)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, variable_context) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, variable_context)

    return value


def _process_raw_values(values: OrderedDict, variable_context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = list()
    for contract_info in config["contracts"]:
        if isinstance(contract_info, str):
            contract_names.append(contract_info)
        elif isinstance(contract_info, dict):
            contract_names.extend(list(contract_info.keys()))
        else:
            raise ValueError("Malformed constructor parameters YAML.")

    return contract_names


def _contract_variables(value: Any) -> List[str]:
    """Returns the names of the contracts referenced by a processed parameter value."""
    if isinstance(value, list):
        return [name for v in value for name in _contract_variables(v)]
    if isinstance(value, ContractName):
        return [value.contract_name]
    return []


def validate_deployment_order(contracts_parameters: OrderedDict) -> None:
    """Checks that every contract is declared after all of the contracts it depends on."""
    declared = set()
    for contract, parameters in contracts_parameters.items():
        if not isinstance(parameters, dict):
            # this can happen if the yml file is malformed
            raise ValueError(f"Malformed constructor parameter config for {contract}.")

        for value in parameters.values():
            for dependency in _contract_variables(value):
                if dependency == contract:
                    raise ConstructorParameters.Invalid(f"{contract} cannot depend on itself.")
                if dependency not in declared:
                    raise ConstructorParameters.Invalid(
                        f"{contract} depends on {dependency}, "
                        f"which must be declared before {contract}."
                    )
        declared.add(contract)


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Dict],
    resolved_parameters: OrderedDict,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise ConstructorParameters.Invalid(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}."
        )
    if not abi_inputs:
        return  # no constructor parameters

    codex = enumerate(zip(abi_inputs, resolved_parameters.items()), start=0)
    for position, (abi_input, resolved_input) in codex:
        name, value = resolved_input
        # validate name
        if abi_input.get("name") != name:
            raise ConstructorParameters.Invalid(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input.get('name')}'."
            )

        # validate value type
        if not is_encodable(abi_input["type"], value):
            raise ConstructorParameters.Invalid(
                f"Constructor param name '{name}' at position {position} has a value '{value}' "
                f"whose type does not match expected ABI type '{abi_input['type']}'"
            )


def validate_constructor_parameters(
    constructor_parameters: "ConstructorParameters",
    store: ArtifactStore,
    deployer: ChecksumAddress,
) -> None:
    """Validates the constructor parameters of every contract against its compiled ABI."""
    resolution = Resolution(deployments=dict(), deployer=deployer, eager=True)
    for contract in constructor_parameters.contract_names:
        resolved_parameters = constructor_parameters.resolve(contract, resolution)
        _validate_constructor_abi_inputs(
            contract_name=contract,
            abi_inputs=store.constructor_inputs(contract),
            resolved_parameters=resolved_parameters,
        )


class ConstructorParameters:
    """
    The deployment plan: contracts in declaration order, each with its constructor parameters.

    A `$ContractName` parameter is a dependency edge; the plan is rejected unless every
    dependency is declared before its dependents.
    """

    class Invalid(Exception):
        """Raised when the constructor parameters are invalid"""

    def __init__(self, parameters: OrderedDict):
        self.parameters = parameters
        validate_deployment_order(parameters)

    @classmethod
    def from_config(cls, config: typing.Dict) -> "ConstructorParameters":
        """Loads the constructor parameters from a deployment config."""
        print("Processing contract constructor parameters...")
        contracts_config = OrderedDict()
        contract_names = _get_contract_names(config)
        constants = config.get("constants")
        for contract_info in config["contracts"]:
            if isinstance(contract_info, str):
                contract_name = contract_info
                parameter_values = OrderedDict()
            elif isinstance(contract_info, dict):
                if len(contract_info) != 1:
                    raise ValueError("Malformed constructor parameters YAML.")

                contract_name = list(contract_info.keys())[0]  # only one entry
                contract_data = contract_info[contract_name] or dict()
                parameter_values = cls._process_parameters(
                    constants, contract_data, contract_name, contract_names
                )
            else:
                raise ValueError("Malformed constructor parameters YAML.")

            if contract_name in contracts_config:
                raise cls.Invalid(f"{contract_name} is declared more than once.")
            contracts_config[contract_name] = parameter_values

        return cls(parameters=contracts_config)

    @classmethod
    def _process_parameters(cls, constants, contract_data, contract_name, contract_names):
        parameter_values = OrderedDict()
        if CONTRACT_CONSTRUCTOR_PARAMETER_KEY in contract_data:
            parameter_values = _process_raw_values(
                contract_data[CONTRACT_CONSTRUCTOR_PARAMETER_KEY],
                VariableContext(
                    contract_names=contract_names, constants=constants, contract_name=contract_name
                ),
            )
        return parameter_values

    @property
    def contract_names(self) -> List[str]:
        return list(self.parameters)

    def dependencies(self, contract_name: str) -> List[str]:
        """Returns the contracts whose addresses the constructor of contract_name needs."""
        dependencies = list()
        for value in self.parameters[contract_name].values():
            for dependency in _contract_variables(value):
                if dependency not in dependencies:
                    dependencies.append(dependency)
        return dependencies

    def waves(self) -> List[List[str]]:
        """
        Groups the contracts into deployment waves.
        Contracts in a wave depend only on contracts of earlier waves.
        """
        depths = dict()
        for contract_name in self.parameters:
            dependency_depths = [depths[d] for d in self.dependencies(contract_name)]
            depths[contract_name] = max(dependency_depths, default=-1) + 1

        waves = [list() for _ in range(max(depths.values(), default=-1) + 1)]
        for contract_name, depth in depths.items():
            waves[depth].append(contract_name)
        return waves

    def resolve(self, contract_name: str, resolution: Resolution) -> OrderedDict:
        """Resolves the constructor parameters for a single contract."""
        resolved_params = _resolve_params(self.parameters[contract_name], resolution)
        return resolved_params


class Transactor:
    """
    Represents the deployer account of a network plus annotated, confirmed transaction execution.
    """

    def __init__(self, network, timeout: float = CONFIRMATION_TIMEOUT):
        self.network = network
        self.timeout = timeout
        self._account = to_checksum_address(network.get_signer())

    def get_account(self) -> ChecksumAddress:
        """Returns the transactor account."""
        return self._account

    def transact(self, contract: DeployedContract, method: str, *args):
        """Sends a state-mutating call and waits for its confirmation."""
        base_message = f"\nTransacting {contract.name}[{contract.address[:10]}].{method}"
        if args:
            pretty_args = "\n\t".join(str(arg) for arg in args)
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)

        tx_hash = self.network.transact(contract.abi, contract.address, method, *args)
        return self.network.await_confirmation(tx_hash, timeout=self.timeout)

    def call(self, contract: DeployedContract, method: str, *args) -> Any:
        """Reads a view function."""
        return self.network.call(contract.abi, contract.address, method, *args)


class Deployer(Transactor):
    """
    Represents the deployer account plus the deployment plan
    for a set of contracts, plus validated/annotated execution.
    """

    def __init__(
        self,
        config: typing.Dict,
        path: Path,
        network,
        timeout: float = CONFIRMATION_TIMEOUT,
        store: Optional[ArtifactStore] = None,
    ):
        super().__init__(network, timeout)

        self.path = path
        self.config = config
        validate_config(config=config, chain_id=network.chain_id, local=network.is_local)
        self.store = store or ArtifactStore(get_build_dir(config))
        self.output_dir = get_output_dir(config)
        self.constructor_parameters = ConstructorParameters.from_config(config)

        # Little trick to expose constants as attributes (e.g., deployer.constants.FOO)
        constants = config.get("constants") or {}
        _Constants = namedtuple("_Constants", list(constants))
        self.constants = _Constants(**constants)

        # fail on missing artifacts or bad parameters before anything is sent
        self.interfaces = OrderedDict(
            (name, self.store.get(name)) for name in self.constructor_parameters.contract_names
        )
        validate_constructor_parameters(
            self.constructor_parameters, store=self.store, deployer=self.get_account()
        )
        self._print_deployment_info()

    @classmethod
    def from_yaml(cls, filepath: Path, *args, **kwargs) -> "Deployer":
        config = _load_yaml(filepath)
        return cls(config, filepath, *args, **kwargs)

    def _submit(self, contract_name: str, deployments: Dict[str, DeployedContract]):
        resolution = Resolution(deployments=deployments, deployer=self.get_account())
        resolved_params = self.constructor_parameters.resolve(contract_name, resolution)
        if resolved_params:
            pretty_params = ", ".join(f"{k}={v}" for k, v in resolved_params.items())
            print(f"\nDeploying {contract_name} with {pretty_params}")
        else:
            print(f"\nDeploying {contract_name}")

        return self.network.deploy(
            self.store.abi(contract_name),
            self.store.bytecode(contract_name),
            *resolved_params.values(),
        )

    def _confirm(self, contract_name: str, tx_hash) -> DeployedContract:
        receipt = self.network.await_confirmation(tx_hash, timeout=self.timeout)
        instance = DeployedContract(
            name=contract_name,
            address=to_checksum_address(receipt["contractAddress"]),
            interface=self.interfaces[contract_name],
            tx_hash=to_hex(tx_hash),
            block_number=int(receipt["blockNumber"]),
        )
        print(f"{contract_name} confirmed at {instance.address} (block {instance.block_number})")
        return instance

    def deploy(
        self, contract_name: str, deployments: Optional[Dict[str, DeployedContract]] = None
    ) -> DeployedContract:
        """Deploys a single contract and waits until it is live."""
        tx_hash = self._submit(contract_name, deployments or dict())
        return self._confirm(contract_name, tx_hash)

    def run(self) -> "OrderedDict[str, DeployedContract]":
        """
        Deploys every contract of the plan exactly once.

        Each wave is submitted in full before its confirmations are awaited; a wave
        starts only once every contract of the previous waves is confirmed.
        """
        print(f"Deploying with {self.get_account()}")
        deployments = OrderedDict()
        for wave in self.constructor_parameters.waves():
            submissions = OrderedDict()
            for contract_name in wave:
                submissions[contract_name] = self._submit(contract_name, deployments)
            for contract_name, tx_hash in submissions.items():
                deployments[contract_name] = self._confirm(contract_name, tx_hash)

        return OrderedDict(
            (name, deployments[name]) for name in self.constructor_parameters.contract_names
        )

    def finalize(
        self, deployments: typing.Iterable[DeployedContract], output_dir: Optional[Path] = None
    ) -> List[ArtifactRecord]:
        """Publishes the deployments to the front-end artifacts directory."""
        return write_artifacts(deployments=deployments, directory=output_dir or self.output_dir)

    def _print_deployment_info(self):
        print(
            f"Account: {self.get_account()}",
            f"Config: {self.path}",
            f"Build: {self.store.build_dir}",
            f"Artifacts: {self.output_dir}",
            f"Network: {self.network.name}",
            f"Chain ID: {self.network.chain_id}",
            f"Confirmation timeout: {self.timeout}s",
            sep="\n",
        )
