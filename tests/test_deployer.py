import pytest

from deployment.networks import ConfirmationTimeout, TransactionFailed
from deployment.params import Deployer
from deployment.utils import ArtifactNotFound
from tests.conftest import DEPLOYER, FakeNetwork, write_build_artifact


def test_each_contract_deployed_once(network, config, params_filepath):
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)
    deployments = deployer.run()

    assert ["Token", "InvestmentPool", "BaseStrategy"] == list(deployments)
    assert sorted(["Token", "InvestmentPool", "BaseStrategy"]) == sorted(network.deployed())
    addresses = {deployment.address for deployment in deployments.values()}
    assert 3 == len(addresses)
    assert DEPLOYER == deployer.get_account()


def test_dependents_wait_for_token_confirmation(network, params_filepath):
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)
    deployer.run()

    token_confirmed = network.events.index(("confirm", "Token"))
    for event in network.events:
        if event[0] == "deploy" and event[1] != "Token":
            assert network.events.index(event) > token_confirmed


def test_independent_contracts_submitted_before_confirmation(network, params_filepath):
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)
    deployer.run()

    kinds = [(event[0], event[1]) for event in network.events]
    assert [
        ("deploy", "Token"),
        ("confirm", "Token"),
        ("deploy", "InvestmentPool"),
        ("deploy", "BaseStrategy"),
        ("confirm", "InvestmentPool"),
        ("confirm", "BaseStrategy"),
    ] == kinds


def test_token_address_wired_into_constructors(network, params_filepath):
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)
    deployments = deployer.run()

    token_address = deployments["Token"].address
    constructor_args = {event[1]: event[2] for event in network.events if event[0] == "deploy"}
    assert () == constructor_args["Token"]
    assert (token_address,) == constructor_args["InvestmentPool"]
    assert (token_address,) == constructor_args["BaseStrategy"]


def test_deployed_contract_carries_interface(network, params_filepath, store):
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)
    deployments = deployer.run()

    strategy = deployments["BaseStrategy"]
    assert store.get("BaseStrategy") == strategy.interface
    assert "getBalance" in [entry.get("name") for entry in strategy.abi]
    assert strategy.tx_hash.startswith("0x")
    assert strategy.block_number > 0


def test_missing_artifact_aborts_before_any_deployment(network, config, build_dir):
    (build_dir / "contracts" / "BaseStrategy.sol" / "BaseStrategy.json").unlink()

    with pytest.raises(ArtifactNotFound, match="BaseStrategy"):
        Deployer(config, "pool.yml", network=network)
    assert [] == network.events


def test_failed_deployment_aborts_run(network, params_filepath):
    network.fail_on.add("Token")
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network)

    with pytest.raises(TransactionFailed):
        deployer.run()
    assert ["Token"] == network.deployed()


def test_confirmation_timeout_aborts_run(network, params_filepath):
    network.timeout_on.add("InvestmentPool")
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network, timeout=5)

    with pytest.raises(ConfirmationTimeout, match="5 seconds"):
        deployer.run()
    assert ("confirm", "BaseStrategy") not in network.events


def test_redeployment_yields_new_addresses(network, params_filepath):
    first = Deployer.from_yaml(filepath=params_filepath, network=network).run()
    second = Deployer.from_yaml(filepath=params_filepath, network=network).run()

    for name in first:
        assert first[name].address != second[name].address


def test_chain_id_mismatch_on_live_network(config):
    network = FakeNetwork(name="sepolia", chain_id=11155111)
    with pytest.raises(ValueError, match="does not match"):
        Deployer(config, "pool.yml", network=network)


def test_chain_id_mismatch_ignored_on_local_network(config):
    network = FakeNetwork(chain_id=1337)
    deployer = Deployer(config, "pool.yml", network=network)
    assert 1337 == deployer.network.chain_id


def test_constants_exposed_as_attributes(network, config):
    deployer = Deployer(config, "pool.yml", network=network)
    assert 10000 == deployer.constants.FUNDING_AMOUNT


def test_single_deploy(network, config, build_dir):
    write_build_artifact(build_dir, "Vault", [])
    config["contracts"].append("Vault")
    deployer = Deployer(config, "pool.yml", network=network)

    vault = deployer.deploy("Vault")
    assert "Vault" == vault.name
    assert [("deploy", "Vault", ()), ("confirm", "Vault")] == network.events
