"""Entry point of the ``dreadnot`` command line tool.

Registers the subcommands and the options shared by all of them.
"""

from __future__ import annotations

import click

from dreadnot import __version__
from dreadnot.cli.commands.deploy import deploy
from dreadnot.cli.commands.history import history
from dreadnot.cli.commands.log import log
from dreadnot.cli.commands.status import status
from dreadnot.cli.commands.warning import warning
from dreadnot.cli.common import CliContext
from dreadnot.lib.logging_config import setup_logging


@click.group(name="dreadnot")
@click.version_option(__version__, prog_name="dreadnot")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False),
    default="settings.yaml",
    show_default=True,
    help="Path to the Dreadnot settings file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable debug logging (warnings and errors only by default)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str, verbose: bool) -> None:
    """Dreadnot deployment orchestrator.

    Example:

        dreadnot --config settings.yaml status

        dreadnot deploy tapkick ord abc123 --user alice
    """
    # Deployment logs are printed by the commands themselves.
    setup_logging(verbose=verbose, quiet=not verbose)
    ctx.obj = CliContext(config_path=config_path)


cli.add_command(deploy)
cli.add_command(status)
cli.add_command(history)
cli.add_command(log)
cli.add_command(warning)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
