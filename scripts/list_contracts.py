#!/usr/bin/python3
from pathlib import Path

import click

from deployment.constants import FRONTEND_CONTRACTS_DIR
from deployment.options import ScriptCommand
from deployment.registry import read_artifacts


@click.command(name="list-contracts", cls=ScriptCommand)
@click.option(
    "--output-dir",
    "-o",
    help="Directory the front-end reads contract artifacts from.",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=FRONTEND_CONTRACTS_DIR,
    show_default=True,
)
def cli(output_dir):
    """List the deployed contracts exported for the front-end."""
    records = read_artifacts(output_dir)
    if not records:
        click.secho(f"No contract artifacts in {output_dir}", fg="red")
        return

    click.secho(f"\nContracts in {output_dir}", fg="green")
    for index, record in enumerate(records.values(), start=1):
        abi_entries = len(record.interface.get("abi", []))
        click.secho(f"    {index}. {record.name} {record.address}", fg="cyan")
        click.secho(
            f"        {record.interface_filepath.name} ({abi_entries} ABI entries)", fg="yellow"
        )


if __name__ == "__main__":
    cli()
