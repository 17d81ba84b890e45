"""CLI command reading or setting the maintenance warning."""

from __future__ import annotations

import asyncio

import click

from dreadnot.cli.common import CliContext, handle_errors, open_dreadnot


async def _warning(config_path: str, text: str | None) -> str:
    dreadnot = await open_dreadnot(config_path)
    if text is not None:
        await dreadnot.set_warning(text)
    return dreadnot.warning


@click.command()
@click.argument("text", required=False)
@click.option("--clear", is_flag=True, help="Remove the current warning")
@click.pass_obj
def warning(obj: CliContext, text: str | None, clear: bool) -> None:
    """Show the maintenance warning, or set it to TEXT.

    Example:

        dreadnot warning "Deploys frozen for the release"

        dreadnot warning --clear
    """
    if clear and text:
        raise click.UsageError("TEXT and --clear are mutually exclusive")
    if clear:
        text = ""

    with handle_errors():
        current = asyncio.run(_warning(obj.config_path, text))

    if current:
        click.secho(f"WARNING: {current}", fg="yellow")
    else:
        click.echo("No warning set")
