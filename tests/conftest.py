import json
from collections import defaultdict

import pytest
import yaml
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from deployment.constants import LOCAL_NETWORKS, LOCALHOST
from deployment.networks import ConfirmationTimeout, TransactionFailed
from deployment.utils import ArtifactStore

# Common constants
HARDHAT_CHAIN_ID = 31337
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
FUNDING_AMOUNT = 10000

ADDRESS_ABI_INPUT = {"internalType": "address", "name": "_token", "type": "address"}

TOKEN_ABI = [
    {"inputs": [], "stateMutability": "nonpayable", "type": "constructor"},
    {
        "inputs": [
            {"internalType": "address", "name": "strategy", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
        ],
        "name": "mintForStrategy",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

INVESTMENT_POOL_ABI = [
    {"inputs": [ADDRESS_ABI_INPUT], "stateMutability": "nonpayable", "type": "constructor"},
]

BASE_STRATEGY_ABI = [
    {"inputs": [ADDRESS_ABI_INPUT], "stateMutability": "nonpayable", "type": "constructor"},
    {
        "inputs": [],
        "name": "getBalance",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

CONTRACT_ABIS = {
    "Token": TOKEN_ABI,
    "InvestmentPool": INVESTMENT_POOL_ABI,
    "BaseStrategy": BASE_STRATEGY_ABI,
}


# Utility functions
def fake_bytecode(contract_name):
    """The fake network reads the contract name back out of the creation code."""
    return "0x" + contract_name.encode().hex()


def hardhat_artifact(contract_name, abi, bytecode=None):
    return {
        "_format": "hh-sol-artifact-1",
        "contractName": contract_name,
        "sourceName": f"contracts/{contract_name}.sol",
        "abi": abi,
        "bytecode": bytecode or fake_bytecode(contract_name),
        "deployedBytecode": "0x",
        "linkReferences": {},
        "deployedLinkReferences": {},
    }


def write_build_artifact(build_dir, contract_name, abi, bytecode=None):
    source_dir = build_dir / "contracts" / f"{contract_name}.sol"
    source_dir.mkdir(parents=True, exist_ok=True)
    artifact = hardhat_artifact(contract_name, abi, bytecode=bytecode)
    (source_dir / f"{contract_name}.json").write_text(json.dumps(artifact))
    (source_dir / f"{contract_name}.dbg.json").write_text(json.dumps({"buildInfo": "x"}))
    return artifact


def pool_config(build_dir, output_dir, contracts=None):
    return {
        "deployment": {"name": "investment-pool", "chain_id": HARDHAT_CHAIN_ID},
        "artifacts": {"dir": str(output_dir), "build_dir": str(build_dir)},
        "constants": {"FUNDING_AMOUNT": FUNDING_AMOUNT},
        "contracts": contracts
        or [
            "Token",
            {"InvestmentPool": {"constructor": {"_token": "$Token"}}},
            {"BaseStrategy": {"constructor": {"_token": "$Token"}}},
        ],
    }


class FakeNetwork:
    """
    In-process stand-in for a JSON-RPC node.

    Records every submission and confirmation in `events` so tests can check ordering.
    """

    def __init__(self, name=LOCALHOST, chain_id=HARDHAT_CHAIN_ID):
        self.name = name
        self.chain_id = chain_id
        self.is_local = name in LOCAL_NETWORKS
        self.events = list()
        self.contracts = dict()  # address -> contract name
        self.balances = defaultdict(int)  # token ledger
        self.strategy_skew = 0  # added to the strategy's own view of its balance
        self.fail_on = set()
        self.timeout_on = set()
        self._counter = 0
        self._pending = dict()

    def _next_hash(self):
        self._counter += 1
        return HexBytes(self._counter.to_bytes(32, "big"))

    def _next_address(self):
        self._counter += 1
        return to_checksum_address(f"0x{0x1000 + self._counter:040x}")

    def get_signer(self):
        return DEPLOYER

    def deploy(self, abi, bytecode, *args):
        contract_name = bytes.fromhex(bytecode[2:]).decode()
        self.events.append(("deploy", contract_name, args))
        tx_hash = self._next_hash()
        self._pending[tx_hash] = ("deploy", contract_name)
        return tx_hash

    def transact(self, abi, address, method, *args):
        self.events.append(("transact", self.contracts[address], method, args))
        if method == "mintForStrategy":
            recipient, amount = args
            self.balances[recipient] += amount
        tx_hash = self._next_hash()
        self._pending[tx_hash] = ("transact", method)
        return tx_hash

    def call(self, abi, address, method, *args):
        if method == "getBalance":
            return self.balances[address] + self.strategy_skew
        if method == "balanceOf":
            return self.balances[args[0]]
        raise AttributeError(method)

    def await_confirmation(self, tx_hash, timeout):
        kind, subject = self._pending.pop(tx_hash)
        if subject in self.timeout_on:
            raise ConfirmationTimeout(f"{subject} not mined within {timeout} seconds.")
        if subject in self.fail_on:
            raise TransactionFailed(f"{subject} reverted.")
        self.events.append(("confirm", subject))

        receipt = {"status": 1, "blockNumber": self._counter, "contractAddress": None}
        if kind == "deploy":
            address = self._next_address()
            self.contracts[address] = subject
            receipt["contractAddress"] = address
        return receipt

    def deployed(self):
        return [event[1] for event in self.events if event[0] == "deploy"]


# Fixtures
@pytest.fixture
def build_dir(tmp_path):
    build_dir = tmp_path / "artifacts"
    for contract_name, abi in CONTRACT_ABIS.items():
        write_build_artifact(build_dir, contract_name, abi)
    return build_dir


@pytest.fixture
def store(build_dir):
    return ArtifactStore(build_dir)


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "front" / "contracts"


@pytest.fixture
def config(build_dir, output_dir):
    return pool_config(build_dir, output_dir)


@pytest.fixture
def params_filepath(tmp_path, config):
    filepath = tmp_path / "pool.yml"
    filepath.write_text(yaml.safe_dump(config, sort_keys=False))
    return filepath


@pytest.fixture
def network():
    return FakeNetwork()
