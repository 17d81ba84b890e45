"""Stack module contract and loader.

A stack module is a Python file in the stacks directory that supplies the
concrete deployment actions of a stack::

    async def get_deployed_revision(stack, args):
        ...

    async def task_deploy(stack, baton, args):
        baton.log.info("checking out ${revision}", revision=args.revision)

    async def task_cleanup(stack, baton, args):
        ...

    targets = {
        "deploy": ["task_deploy"],
        "finally": ["task_cleanup"],
    }

Task functions and revision lookups may be coroutine functions or plain
callables; a task fails by raising. Targets are resolved against the module's
tasks once, when the stack is created.
"""

from __future__ import annotations

import importlib.util
import inspect
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Any, Protocol

from dreadnot.config.defaults import DEFAULT_TARGETS, FINALLY_TARGET, TASK_PREFIX
from dreadnot.lib.errors import ConfigError
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.deployment import RevisionArgs, RunArgs

if TYPE_CHECKING:
    from dreadnot.deploy.baton import Baton
    from dreadnot.deploy.stack import Stack

logger = get_logger(__name__)


class TaskFunction(Protocol):
    """A single deployment step."""

    def __call__(self, stack: Stack, baton: Baton, args: RunArgs) -> Any: ...


RevisionGetter = Callable[["Stack", RevisionArgs], Any]


async def call_maybe_async(func: Callable[..., Any], *args: Any) -> Any:
    """Call ``func`` and await the result when it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def task_name(name: str) -> str:
    """Normalize a target entry to its task function name."""
    return name if name.startswith(TASK_PREFIX) else f"{TASK_PREFIX}{name}"


@dataclass
class StackModule:
    """Resolved capabilities of a stack module.

    Attributes:
        name: Module name the capabilities were loaded from
        tasks: Task functions keyed by function name
        targets: Ordered task names per target; ``None`` means undefined
        get_deployed_revision: Optional deployed revision lookup
        get_latest_revision: Optional latest revision lookup
    """

    name: str
    tasks: dict[str, TaskFunction] = field(default_factory=dict)
    targets: dict[str, list[str] | None] = field(default_factory=dict)
    get_deployed_revision: RevisionGetter | None = None
    get_latest_revision: RevisionGetter | None = None

    @classmethod
    def from_namespace(cls, name: str, namespace: Mapping[str, Any]) -> StackModule:
        """Build a StackModule from a module's attributes.

        Raises:
            ConfigError: If a declared target names a task that does not exist
        """
        tasks: dict[str, TaskFunction] = {
            attr: value
            for attr, value in namespace.items()
            if attr.startswith(TASK_PREFIX) and callable(value)
        }

        declared = namespace.get("targets") or {}
        if not isinstance(declared, Mapping):
            raise ConfigError(f"{name}.targets", "targets must be a mapping")

        targets: dict[str, list[str] | None] = {}
        for target, default_tasks in DEFAULT_TARGETS.items():
            if default_tasks is None or all(t in tasks for t in default_tasks):
                targets[target] = list(default_tasks) if default_tasks else None

        for target, task_names in declared.items():
            if task_names is None:
                targets[target] = None
                continue
            resolved = [task_name(t) for t in task_names]
            missing = [t for t in resolved if t not in tasks]
            if missing:
                raise ConfigError(
                    f"{name}.targets.{target}",
                    f"unknown task(s) {', '.join(missing)}",
                )
            targets[target] = resolved

        return cls(
            name=name,
            tasks=tasks,
            targets=targets,
            get_deployed_revision=namespace.get("get_deployed_revision"),
            get_latest_revision=namespace.get("get_latest_revision"),
        )

    def get_target(self, name: str) -> list[str] | None:
        """Return the ordered task names of a target, None when undefined."""
        return self.targets.get(name)

    @property
    def finally_target(self) -> list[str] | None:
        """Task names of the reserved ``finally`` target."""
        return self.get_target(FINALLY_TARGET)


def load_stack_module(stacks_dir: Path, module_name: str) -> StackModule:
    """Import ``<stacks_dir>/<module_name>.py`` and resolve its capabilities.

    Raises:
        ConfigError: If the file is missing, fails to import or is invalid
    """
    path = stacks_dir / f"{module_name}.py"
    if not path.is_file():
        raise ConfigError("module_name", f"Stack module not found at {path}")

    qualified = f"dreadnot_stacks.{module_name}"
    spec = importlib.util.spec_from_file_location(qualified, path)
    if spec is None or spec.loader is None:
        raise ConfigError("module_name", f"Cannot load stack module {path}")

    module: ModuleType = importlib.util.module_from_spec(spec)
    sys.modules[qualified] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(qualified, None)
        raise ConfigError("module_name", f"Failed to import {path}: {e}") from e

    logger.debug(f"Loaded stack module {module_name} from {path}")
    return StackModule.from_namespace(module_name, vars(module))
