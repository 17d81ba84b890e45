"""Helpers shared by the CLI commands."""

from __future__ import annotations

import os
import sys
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

import click

from dreadnot.config.loader import ConfigLoader
from dreadnot.deploy.orchestrator import Dreadnot
from dreadnot.lib.errors import (
    ConfigError,
    DreadnotError,
    NotFoundError,
    PersistenceError,
    StackLockedError,
)
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.deployment import DeploymentSummary, LogEntry

logger = get_logger(__name__)

EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_RUNTIME = 3
EXIT_LOCKED = 4

LEVEL_COLORS = {
    "DEBUG": "bright_black",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red",
}


@dataclass
class CliContext:
    """Object stored on the click context by the ``dreadnot`` group."""

    config_path: str


def default_user() -> str:
    """Return the login name used when ``--user`` is not given."""
    return os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"


@contextmanager
def handle_errors() -> Generator[None, None, None]:
    """Translate Dreadnot errors into messages and exit codes.

    Exit codes:
        2: Configuration error
        3: Runtime error (unknown resource, storage, revision lookup)
        4: Stack locked by another deployment
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_CONFIG)
    except StackLockedError as e:
        click.secho(f"Error: {e.title}", fg="yellow", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(EXIT_LOCKED)
    except NotFoundError as e:
        click.secho(f"Error: {e.message}", fg="red", err=True)
        sys.exit(EXIT_RUNTIME)
    except PersistenceError as e:
        logger.error(f"Storage error: {e}")
        click.secho("Error: Storage error", fg="red", err=True)
        click.echo(f"  {e}", err=True)
        sys.exit(EXIT_RUNTIME)
    except DreadnotError as e:
        logger.error(f"{e.title}: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_RUNTIME)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_RUNTIME)


async def open_dreadnot(config_path: str) -> Dreadnot:
    """Load settings, build the orchestrator and initialize it.

    Raises:
        ConfigError: If the settings or a stack module are invalid
        PersistenceError: If the data directory is unusable
    """
    config = ConfigLoader().load_config(config_path)
    dreadnot = Dreadnot(config)
    await dreadnot.init()
    return dreadnot


def format_time(ms: int) -> str:
    """Format a millisecond timestamp for display."""
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def format_outcome(summary: DeploymentSummary) -> str:
    if not summary.finished:
        return click.style("RUNNING", fg="cyan")
    if summary.success:
        return click.style("SUCCESS", fg="green")
    return click.style("FAILED", fg="red")


def echo_entry(entry: LogEntry) -> None:
    """Print one deployment log entry."""
    level = entry.level_name
    prefix = click.style(f"{level:<8}", fg=LEVEL_COLORS.get(level))
    click.echo(f"{prefix} {entry.msg}")
    err = entry.obj.get("err")
    if isinstance(err, dict) and err.get("stack"):
        click.echo(err["stack"], err=True)
