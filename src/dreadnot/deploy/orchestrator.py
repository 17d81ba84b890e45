"""Process-wide orchestrator.

``Dreadnot`` owns the stack registry, the named lock table, the event bus and
the maintenance warning banner. It is the entry point used by the CLI and by
any external front end.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from pathlib import Path

from dreadnot.config.defaults import PAGE_SIZE, WARNING_FILE
from dreadnot.deploy.events import EventBus, Subscription
from dreadnot.deploy.locks import LockRegistry
from dreadnot.deploy.logbus import DeploymentLogReader, LogBus
from dreadnot.deploy.module import StackModule
from dreadnot.deploy.stack import Stack
from dreadnot.lib.errors import NotFoundError, PersistenceError
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.config import DreadnotConfig
from dreadnot.models.deployment import (
    DeploymentSummary,
    OrchestratorSummary,
    RegionSummary,
    RunningStatus,
    StackSummary,
)

logger = get_logger(__name__)

DEPLOYMENTS_TOPIC = "deployments"


class Dreadnot:
    """Registry of stacks plus global lock and warning state.

    Attributes:
        config: Validated settings
        locks: Named lock table shared by every stack
        bus: Event bus carrying deployment logs and notifications
        logbus: Log distribution on top of ``bus``
        warning: Current maintenance warning, empty when none
    """

    def __init__(
        self,
        config: DreadnotConfig,
        modules: dict[str, StackModule] | None = None,
    ) -> None:
        """Create the orchestrator and its stacks.

        Args:
            config: Validated settings
            modules: Pre-resolved stack modules by stack name. Stacks not
                listed load their module from ``config.stacks_dir``.

        Raises:
            ConfigError: If a stack module cannot be loaded or is invalid
        """
        self.config = config
        self.locks = LockRegistry()
        self.bus = EventBus()
        self.logbus = LogBus(self.bus)
        self.warning = ""
        self._warning_lock = asyncio.Lock()
        self._stacks: dict[str, Stack] = {}

        modules = modules or {}
        for name in config.stacks:
            if name in modules:
                stack = Stack(
                    name, config, modules[name], locks=self.locks, logbus=self.logbus
                )
            else:
                stack = Stack.from_config(
                    name, config, locks=self.locks, logbus=self.logbus
                )
            self._stacks[name] = stack

    @property
    def warning_path(self) -> Path:
        """Path of the persisted warning banner."""
        return self.config.data_root / WARNING_FILE

    @property
    def stacks(self) -> list[Stack]:
        """All configured stacks."""
        return list(self._stacks.values())

    async def init(self) -> None:
        """Create the data root, load the warning and initialize every stack.

        Raises:
            PersistenceError: If the data directory or warning file is unusable
        """
        logger.info(f"Initializing Dreadnot '{self.config.name}' ({self.config.env})")
        data_root = self.config.data_root
        try:
            await asyncio.to_thread(data_root.mkdir, mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError("create", str(data_root), str(e)) from e

        try:
            text = await asyncio.to_thread(self.warning_path.read_text, encoding="utf-8")
        except FileNotFoundError:
            text = ""
        except OSError as e:
            raise PersistenceError("read", str(self.warning_path), str(e)) from e

        self.warning = text.strip()
        if self.warning:
            logger.warning(f'warning set to "{self.warning}"')
        else:
            logger.info("no warning set")

        await asyncio.gather(*(stack.init() for stack in self._stacks.values()))

    def get_stack(self, name: str) -> Stack:
        """Return a stack by name.

        Raises:
            NotFoundError: If no such stack is configured
        """
        try:
            return self._stacks[name]
        except KeyError:
            raise NotFoundError("Stack not found") from None

    def exclusive(self, stack_name: str) -> AbstractAsyncContextManager[None]:
        """Hold a stack's lock file against other Dreadnot processes.

        Raises:
            NotFoundError: If no such stack is configured
        """
        return self.get_stack(stack_name).exclusive()

    # -- locks -----------------------------------------------------------------

    def lock(self, names: Iterable[str], deployment: DeploymentSummary) -> None:
        """Acquire named locks for a deployment, all or nothing."""
        self.locks.acquire(names, deployment)

    def unlock(self, names: Iterable[str]) -> None:
        """Release named locks."""
        self.locks.release(names)

    # -- warning banner --------------------------------------------------------

    async def set_warning(self, text: str) -> None:
        """Persist and publish a maintenance warning; empty text clears it.

        Raises:
            PersistenceError: If the warning file cannot be written
        """
        async with self._warning_lock:
            try:
                await asyncio.to_thread(
                    self.warning_path.write_text, text, encoding="utf-8"
                )
            except OSError as e:
                raise PersistenceError("write", str(self.warning_path), str(e)) from e
            self.warning = text
            if text:
                logger.warning(f'warning set to "{text}"')
            else:
                logger.info("warning cleared")

    # -- notifications ---------------------------------------------------------

    def subscribe(self, topic: str = DEPLOYMENTS_TOPIC) -> Subscription:
        """Subscribe to an event path, by default deployment starts."""
        return self.bus.subscribe(topic)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription created by ``subscribe``."""
        self.bus.unsubscribe(subscription)

    # -- queries and actions -----------------------------------------------------

    def get_summary(self) -> OrchestratorSummary:
        """Return the instance title, environment and warning."""
        return OrchestratorSummary(
            name=self.config.env, title=self.config.name, warning=self.warning
        )

    async def get_stack_summaries(self) -> list[StackSummary]:
        """Return summaries of every stack."""
        return list(
            await asyncio.gather(*(stack.get_summary() for stack in self._stacks.values()))
        )

    async def get_stack_summary(self, stack_name: str) -> StackSummary:
        return await self.get_stack(stack_name).get_summary()

    async def get_region_summaries(self, stack_name: str) -> list[RegionSummary]:
        return await self.get_stack(stack_name).get_region_summaries()

    async def get_region_summary(self, stack_name: str, region: str) -> RegionSummary:
        return await self.get_stack(stack_name).get_region_summary(region)

    async def run(
        self, stack_name: str, target: str, region: str, revision: str, user: str
    ) -> str:
        """Start ``target`` of a stack and return the deployment number."""
        return await self.get_stack(stack_name).run(target, region, revision, user)

    async def deploy(self, stack_name: str, region: str, to: str, user: str) -> str:
        """Start the ``deploy`` target of a stack and return the number."""
        return await self.run(stack_name, "deploy", region, to, user)

    async def get_deployment_summaries(
        self, stack_name: str, region: str, limit: int = PAGE_SIZE
    ) -> list[DeploymentSummary]:
        return await self.get_stack(stack_name).get_deployment_summaries(region, limit)

    async def get_deployment_summary(
        self, stack_name: str, region: str, number: str
    ) -> DeploymentSummary:
        return await self.get_stack(stack_name).get_deployment_summary(region, number)

    async def get_deployment_log(
        self,
        stack_name: str,
        region: str,
        number: str,
        from_index: int = 0,
        stream: bool = True,
        timeout: float | None = None,
    ) -> DeploymentLogReader:
        return await self.get_stack(stack_name).get_deployment_log(
            region, number, from_index=from_index, stream=stream, timeout=timeout
        )

    def running_status(self) -> list[RunningStatus]:
        """Return the running status of every stack."""
        return [stack.running_status() for stack in self._stacks.values()]

    async def join(self) -> None:
        """Wait for every in-flight deployment to finish."""
        await asyncio.gather(*(stack.join() for stack in self._stacks.values()))
