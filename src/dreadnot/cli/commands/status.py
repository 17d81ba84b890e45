"""CLI command showing stacks, regions and running deployments."""

from __future__ import annotations

import asyncio

import click

from dreadnot.cli.common import CliContext, format_outcome, handle_errors, open_dreadnot
from dreadnot.models.deployment import RegionSummary, RunningStatus, StackSummary


async def _collect(
    config_path: str,
) -> tuple[str, str, str, list[tuple[StackSummary, list[RegionSummary]]], list[RunningStatus]]:
    dreadnot = await open_dreadnot(config_path)
    summary = dreadnot.get_summary()
    stacks = []
    for stack in dreadnot.stacks:
        stacks.append((await stack.get_summary(), await stack.get_region_summaries()))
    return summary.title, summary.name, summary.warning, stacks, dreadnot.running_status()


@click.command()
@click.pass_obj
def status(obj: CliContext) -> None:
    """Show every stack with its regions and the maintenance warning."""
    with handle_errors():
        title, env, warning, stacks, running = asyncio.run(_collect(obj.config_path))

    click.secho(f"{title} ({env})", bold=True)
    if warning:
        click.secho(f"WARNING: {warning}", fg="yellow")

    running_by_stack = {item.stack: item for item in running}
    for stack, regions in stacks:
        click.echo()
        click.secho(f"{stack.name}", bold=True, nl=False)
        click.echo(f"  latest: {stack.latest_revision or '-'}")
        for region in regions:
            click.echo(
                f"  {region.name:<12} deployed: {region.deployed_revision or '-':<16}"
                f" last deployment: #{region.latest_deployment or '-'}"
            )
        item = running_by_stack.get(stack.name)
        if item is not None and item.info is not None:
            info = item.info
            click.echo(
                f"  running: #{info.name} to {info.region} ({info.to_revision}) "
                f"{format_outcome(info)}"
            )
