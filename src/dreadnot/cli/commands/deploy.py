"""CLI command for running a deployment.

Implements ``dreadnot deploy``. The deployment runs inside the CLI process,
so the command always waits for it to finish; ``--no-follow`` only hides the
log. The stack's lock file is held for the whole run, so a second
``dreadnot deploy`` of the same stack from another process exits with the
locked status instead of reusing a deployment number.
"""

from __future__ import annotations

import asyncio
import sys

import click

from dreadnot.cli.common import (
    EXIT_FAILED,
    CliContext,
    default_user,
    echo_entry,
    handle_errors,
    open_dreadnot,
)


async def _run_deploy(
    config_path: str,
    stack: str,
    region: str,
    revision: str,
    user: str,
    target: str,
    follow: bool,
) -> bool:
    dreadnot = await open_dreadnot(config_path)
    async with dreadnot.exclusive(stack):
        number = await dreadnot.run(stack, target, region, revision, user)
        click.secho(
            f"Deployment #{number} of {stack}:{region} started ({target} -> {revision})",
            bold=True,
        )

        reader = await dreadnot.get_deployment_log(stack, region, number)
        success = False
        async for event in reader:
            if event.kind == "data" and follow:
                assert event.entry is not None
                echo_entry(event.entry)
            elif event.kind == "end":
                success = bool(event.success)

        await dreadnot.join()
    return success


@click.command()
@click.argument("stack")
@click.argument("region")
@click.argument("revision")
@click.option(
    "--user",
    "-u",
    default=default_user,
    help="User recorded on the deployment (default: $USER)",
)
@click.option(
    "--target",
    "-t",
    default="deploy",
    show_default=True,
    help="Stack target to run",
)
@click.option(
    "--follow/--no-follow",
    default=True,
    help="Print the deployment log while it runs",
)
@click.pass_obj
def deploy(
    obj: CliContext,
    stack: str,
    region: str,
    revision: str,
    user: str,
    target: str,
    follow: bool,
) -> None:
    """Deploy REVISION of STACK to REGION.

    Exits with status 1 when the deployment fails.

    Example:

        dreadnot deploy tapkick ord abc123 --user alice
    """
    with handle_errors():
        success = asyncio.run(
            _run_deploy(obj.config_path, stack, region, revision, user, target, follow)
        )

    if success:
        click.secho("Deployment succeeded", fg="green")
    else:
        click.secho("Deployment failed", fg="red", err=True)
        sys.exit(EXIT_FAILED)
