"""Logging setup for Dreadnot.

All modules obtain their logger through ``get_logger(__name__)`` so that the
``dreadnot`` hierarchy can be configured in one place by the CLI.
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "dreadnot"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_handler: logging.Handler | None = None


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module name."""
    return logging.getLogger(name)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure console logging for the ``dreadnot`` logger hierarchy.

    Calling this more than once replaces the previously installed handler
    instead of stacking a second one.

    Args:
        verbose: Enable DEBUG output.
        quiet: Only show warnings and errors. Ignored when verbose is set.
    """
    global _handler

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _handler.setLevel(level)

    root.addHandler(_handler)
    root.setLevel(level)
