"""CLI command listing recent deployments of a region."""

from __future__ import annotations

import asyncio

import click

from dreadnot.cli.common import (
    CliContext,
    format_outcome,
    format_time,
    handle_errors,
    open_dreadnot,
)
from dreadnot.config.defaults import PAGE_SIZE
from dreadnot.models.deployment import DeploymentSummary


async def _history(
    config_path: str, stack: str, region: str, limit: int
) -> list[DeploymentSummary]:
    dreadnot = await open_dreadnot(config_path)
    return await dreadnot.get_deployment_summaries(stack, region, limit)


@click.command()
@click.argument("stack")
@click.argument("region")
@click.option(
    "--limit",
    "-n",
    type=click.IntRange(min=1),
    default=PAGE_SIZE,
    show_default=True,
    help="Number of deployments to show",
)
@click.pass_obj
def history(obj: CliContext, stack: str, region: str, limit: int) -> None:
    """List the most recent deployments of STACK in REGION, newest first."""
    with handle_errors():
        summaries = asyncio.run(_history(obj.config_path, stack, region, limit))

    if not summaries:
        click.echo(f"No deployments of {stack}:{region}")
        return

    for summary in summaries:
        click.echo(
            f"#{summary.name:<5} {format_time(summary.time)}  "
            f"{summary.from_revision or '-'} -> {summary.to_revision}  "
            f"{summary.user:<12} {format_outcome(summary)}"
        )
