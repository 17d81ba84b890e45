"""CLI command printing the log of a deployment."""

from __future__ import annotations

import asyncio
import sys

import click

from dreadnot.cli.common import (
    EXIT_FAILED,
    CliContext,
    echo_entry,
    format_outcome,
    handle_errors,
    open_dreadnot,
)
from dreadnot.models.deployment import DeploymentSummary


async def _print_log(
    config_path: str, stack: str, region: str, number: str, from_index: int
) -> DeploymentSummary:
    dreadnot = await open_dreadnot(config_path)
    summary = await dreadnot.get_deployment_summary(stack, region, number)
    reader = await dreadnot.get_deployment_log(
        stack, region, number, from_index=from_index
    )
    async for event in reader:
        if event.kind == "data":
            assert event.entry is not None
            echo_entry(event.entry)
    return summary


@click.command()
@click.argument("stack")
@click.argument("region")
@click.argument("number")
@click.option(
    "--from",
    "from_index",
    type=click.IntRange(min=0),
    default=0,
    help="First log entry to print",
)
@click.pass_obj
def log(obj: CliContext, stack: str, region: str, number: str, from_index: int) -> None:
    """Print the log of deployment NUMBER of STACK in REGION."""
    with handle_errors():
        summary = asyncio.run(
            _print_log(obj.config_path, stack, region, number, from_index)
        )

    click.echo(f"Deployment #{summary.name}: {format_outcome(summary)}")
    if summary.finished and not summary.success:
        sys.exit(EXIT_FAILED)
