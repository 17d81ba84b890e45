"""Dreadnot - deployment rollout orchestration.

Dreadnot runs user-triggered deployments of named stacks into regions. Each
stack is backed by a small Python module supplying the deployment tasks;
Dreadnot takes care of the rest.

Main features:
- One in-flight deployment per stack, plus configurable named locks
- Ordered deployment targets with a guaranteed ``finally`` cleanup target
- Numbered, immutable deployment history persisted as JSON
- Live and catch-up log streaming for every deployment
"""

from dreadnot.deploy.orchestrator import Dreadnot
from dreadnot.deploy.stack import Stack
from dreadnot.lib.errors import (
    ConfigError,
    DreadnotError,
    NotFoundError,
    PersistenceError,
    StackLockedError,
    TaskError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "Dreadnot",
    "DreadnotError",
    "NotFoundError",
    "PersistenceError",
    "Stack",
    "StackLockedError",
    "TaskError",
]
