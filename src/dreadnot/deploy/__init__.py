"""Dreadnot deployment engine.

This package provides the orchestration engine: stacks and their modules,
the task pipeline, named locks, the revision cache, deployment persistence
and log distribution.
"""

from dreadnot.deploy.baton import Baton, BatonLogger
from dreadnot.deploy.cache import RevisionCache
from dreadnot.deploy.events import EventBus
from dreadnot.deploy.locks import LockRegistry
from dreadnot.deploy.logbus import DeploymentLogReader, LogBus, LogEvent, LogSegment
from dreadnot.deploy.module import StackModule, load_stack_module
from dreadnot.deploy.orchestrator import Dreadnot
from dreadnot.deploy.runner import DeploymentRunner, RunnerState
from dreadnot.deploy.stack import Stack
from dreadnot.deploy.store import DeploymentStore

__all__ = [
    "Baton",
    "BatonLogger",
    "DeploymentLogReader",
    "DeploymentRunner",
    "DeploymentStore",
    "Dreadnot",
    "EventBus",
    "LockRegistry",
    "LogBus",
    "LogEvent",
    "LogSegment",
    "RevisionCache",
    "RunnerState",
    "Stack",
    "StackModule",
    "load_stack_module",
]
