from pathlib import Path

import click

from deployment.constants import CONFIRMATION_TIMEOUT, DEFAULT_PARAMS_FILEPATH, LOCALHOST
from deployment.types import Seconds

network_option = click.option(
    "--network",
    "-n",
    "network_name",
    help="Target network: 'tester' (in-memory), 'localhost', or any name paired with --rpc-url.",
    envvar="DEPLOY_NETWORK",
    default=LOCALHOST,
    show_default=True,
)

rpc_url_option = click.option(
    "--rpc-url",
    help="JSON-RPC endpoint of a non-local network.",
    envvar="DEPLOY_RPC_URL",
    required=False,
)

params_option = click.option(
    "--params",
    "-p",
    "params_filepath",
    help="Deployment parameters YAML",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=DEFAULT_PARAMS_FILEPATH,
    show_default=True,
)

output_dir_option = click.option(
    "--output-dir",
    "-o",
    help="Directory the front-end reads contract artifacts from.",
    type=click.Path(file_okay=False, path_type=Path),
    required=False,
)

timeout_option = click.option(
    "--timeout",
    "-t",
    help="Seconds to wait for each transaction confirmation.",
    envvar="DEPLOY_CONFIRMATION_TIMEOUT",
    type=Seconds(1),
    default=CONFIRMATION_TIMEOUT,
    show_default=True,
)


class ScriptCommand(click.Command):
    """A command whose bad options exit with status 1, like any other failed run."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as e:
            e.exit_code = 1
            raise
