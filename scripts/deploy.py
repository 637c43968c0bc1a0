#!/usr/bin/python3
import click

from deployment.constants import (
    BASE_STRATEGY,
    CONFIRMATION_TIMEOUT,
    STRATEGY_FUNDING_AMOUNT,
    TOKEN,
)
from deployment.networks import connect, warn_if_ephemeral
from deployment.options import (
    ScriptCommand,
    network_option,
    output_dir_option,
    params_option,
    rpc_url_option,
    timeout_option,
)
from deployment.params import Deployer
from deployment.wiring import fund_strategy


def deploy_pool(network, params_filepath, output_dir=None, timeout=CONFIRMATION_TIMEOUT):
    """
    Deploys Token, then InvestmentPool and BaseStrategy against it, funds the
    strategy and publishes the front-end artifacts.
    """
    deployer = Deployer.from_yaml(filepath=params_filepath, network=network, timeout=timeout)

    deployments = deployer.run()

    amount = getattr(deployer.constants, "FUNDING_AMOUNT", STRATEGY_FUNDING_AMOUNT)
    fund_strategy(
        deployer,
        token=deployments[TOKEN],
        strategy=deployments[BASE_STRATEGY],
        amount=amount,
    )

    deployer.finalize(deployments=deployments.values(), output_dir=output_dir)
    return deployments


@click.command(name="deploy", cls=ScriptCommand)
@network_option
@rpc_url_option
@params_option
@output_dir_option
@timeout_option
def cli(network_name, rpc_url, params_filepath, output_dir, timeout):
    """Deploy the investment pool contracts and export them for the front-end."""
    warn_if_ephemeral(network_name)
    try:
        network = connect(network_name, rpc_url=rpc_url)
        click.echo(f"Connected to {network.name} network.")
        deploy_pool(network, params_filepath, output_dir=output_dir, timeout=timeout)
    except Exception as e:
        raise click.ClickException(f"{type(e).__name__}: {e}") from e


if __name__ == "__main__":
    cli()
