"""Stack façade.

A Stack ties one stack module to its regions, its deployment store, its
revision cache and the orchestrator's locks and event bus.

A stack runs at most one deployment at a time across *all* of its regions:
``current`` is a single slot, not one per region. Deployments of two
different regions of the same stack therefore never overlap, even when no
named locks are configured. Named locks are the finer-grained, cross-stack
mechanism on top of that.

Both only hold inside one process. Callers that share a data root with other
processes wrap their deployments in ``Stack.exclusive``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dreadnot.config.defaults import FINALLY_TARGET, LOCK_FILE, LOGS_DIR, PAGE_SIZE
from dreadnot.deploy.cache import RevisionCache
from dreadnot.deploy.locks import LockRegistry
from dreadnot.deploy.logbus import DeploymentLogReader, LogBus
from dreadnot.deploy.module import StackModule, call_maybe_async, load_stack_module
from dreadnot.deploy.runner import DeploymentRunner
from dreadnot.deploy.store import DeploymentStore, StackFileLock
from dreadnot.lib.errors import (
    ConfigError,
    NotFoundError,
    PersistenceError,
    RevisionLookupError,
    StackLockedError,
)
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.config import DreadnotConfig, StackConfig
from dreadnot.models.deployment import (
    Deployment,
    DeploymentSummary,
    RegionSummary,
    RevisionArgs,
    RunArgs,
    RunningStatus,
    StackSummary,
)

logger = get_logger(__name__)

LATEST_REVISION_KEY = "latest_revision"

_LOCK_TEMPLATE_SAMPLE = {
    "stack": "stack",
    "dry_run": False,
    "environment": "env",
    "region": "region",
    "revision": "revision",
    "user": "user",
}


class Stack:
    """A deployable unit bound to a stack module.

    Attributes:
        name: Stack name
        config: Global settings
        stack_config: This stack's settings
        module: Resolved stack module capabilities
        locks: Orchestrator-wide named lock table
        logbus: Deployment log distribution
        cache: Revision lookup cache
        store: Deployment record store
        logger: Python logger deployment logs are forwarded to
    """

    def __init__(
        self,
        name: str,
        config: DreadnotConfig,
        module: StackModule,
        *,
        locks: LockRegistry,
        logbus: LogBus,
        cache: RevisionCache | None = None,
        store: DeploymentStore | None = None,
    ) -> None:
        """Create a stack.

        Raises:
            ConfigError: If the stack is not configured or a named lock
                template references an unknown field
        """
        if name not in config.stacks:
            raise ConfigError(f"stacks.{name}", "Stack is not configured")

        self.name = name
        self.config = config
        self.stack_config: StackConfig = config.stacks[name]
        self.module = module
        self.locks = locks
        self.logbus = logbus
        self.cache = cache if cache is not None else RevisionCache()
        self.store = (
            store
            if store is not None
            else DeploymentStore(config.data_root / LOGS_DIR / name)
        )
        self.logger: logging.Logger = get_logger(f"dreadnot.deploy.stack.{name}")
        self._current: Deployment | None = None
        self._runner: DeploymentRunner | None = None
        self._file_lock: StackFileLock | None = None

        self._validate_lock_templates()

    @classmethod
    def from_config(
        cls,
        name: str,
        config: DreadnotConfig,
        *,
        locks: LockRegistry,
        logbus: LogBus,
    ) -> Stack:
        """Create a stack, loading its module from the stacks directory."""
        if name not in config.stacks:
            raise ConfigError(f"stacks.{name}", "Stack is not configured")
        module_name = config.stacks[name].module_name or name
        module = load_stack_module(config.stacks_dir, module_name)
        return cls(name, config, module, locks=locks, logbus=logbus)

    def _validate_lock_templates(self) -> None:
        templates = list(self.stack_config.named_locks)
        for override in self.stack_config.region_overrides.values():
            templates.extend(override.named_locks or [])
        for template in templates:
            try:
                template.format(**_LOCK_TEMPLATE_SAMPLE)
            except (AttributeError, KeyError, IndexError, ValueError) as e:
                raise ConfigError(
                    f"stacks.{self.name}.named_locks",
                    f"Invalid lock template '{template}': {e}",
                ) from e

    # -- current deployment slot (written only by DeploymentRunner) ----------

    @property
    def current(self) -> Deployment | None:
        """The in-flight deployment of this stack, if any."""
        return self._current

    def _set_current(self, deployment: Deployment) -> None:
        if self._current is not None:
            raise StackLockedError(self._current.summary())
        self._current = deployment

    def _clear_current(self, deployment: Deployment) -> None:
        if self._current is deployment:
            self._current = None

    # -- setup ----------------------------------------------------------------

    @property
    def regions(self) -> list[str]:
        """Configured region names."""
        return list(self.stack_config.regions)

    async def init(self) -> None:
        """Prepare the store for every region and recover deployment numbers."""
        await asyncio.gather(*(self.store.init_region(r) for r in self.regions))
        logger.info(f"Stack {self.name} initialized with regions {self.regions}")

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Hold this stack's lock file for the duration of the block.

        Once the lock is held the regions are rescanned, so numbering
        continues after deployments persisted by other processes.

        Raises:
            StackLockedError: If another process is deploying this stack
            PersistenceError: If the lock file or data directory is unusable
        """
        lock = StackFileLock(self.store.root / LOCK_FILE)
        await asyncio.to_thread(lock.acquire)
        try:
            await self.init()
            self._file_lock = lock
            yield
        finally:
            self._file_lock = None
            await asyncio.to_thread(lock.release)

    def has_region(self, region: str) -> bool:
        """Whether ``region`` belongs to this stack and is initialized."""
        return self.store.has_region(region)

    def get_target(self, name: str) -> list[str] | None:
        """Return the ordered task names of a target, None when undefined."""
        return self.module.get_target(name)

    def get_lock_names(self, args: RunArgs) -> list[str]:
        """Format this stack's named lock templates with the run arguments."""
        values = {"stack": self.name, **args.model_dump()}
        return [
            template.format(**values)
            for template in self.stack_config.named_locks_for(args.region)
        ]

    def notify_started(self, deployment: Deployment) -> None:
        """Publish the ``deployments`` notification for a new deployment."""
        self.logbus.bus.publish("deployments", deployment.summary())

    # -- revisions -----------------------------------------------------------

    async def get_deployed_revision(self, region: str) -> str | None:
        """Ask the stack module which revision is deployed in ``region``.

        Raises:
            RevisionLookupError: If the module lookup fails
        """
        getter = self.module.get_deployed_revision
        if getter is None:
            return None
        args = RevisionArgs(environment=self.config.env, region=region)
        try:
            return await call_maybe_async(getter, self, args)
        except Exception as e:
            raise RevisionLookupError(self.name, str(e)) from e

    async def get_latest_revision(self) -> str | None:
        """Return the newest deployable revision, cached for ``tip_ttl``.

        Raises:
            RevisionLookupError: If the module lookup fails
        """
        getter = self.module.get_latest_revision
        if getter is None:
            return None

        async def fetch() -> str | None:
            try:
                return await call_maybe_async(
                    getter, self, RevisionArgs(environment=self.config.env)
                )
            except Exception as e:
                raise RevisionLookupError(self.name, str(e)) from e

        return await self.cache.get_cached(
            LATEST_REVISION_KEY, self.stack_config.tip_ttl, fetch
        )

    # -- summaries -------------------------------------------------------------

    async def get_summary(self) -> StackSummary:
        """Return the stack name and its latest revision."""
        return StackSummary(name=self.name, latest_revision=await self.get_latest_revision())

    async def get_region_summary(self, region: str) -> RegionSummary:
        """Return the deployed revision and newest deployment of a region.

        Raises:
            NotFoundError: If the region is unknown
        """
        if not self.has_region(region):
            raise NotFoundError("Region not found")
        revision = await self.get_deployed_revision(region)
        newest = self.store.newest(region)
        return RegionSummary(
            name=region,
            deployed_revision=revision,
            latest_deployment=str(newest) if newest else None,
        )

    async def get_region_summaries(self) -> list[RegionSummary]:
        """Return summaries of every region."""
        return list(
            await asyncio.gather(*(self.get_region_summary(r) for r in self.regions))
        )

    def _check_number(self, region: str, number: str) -> str:
        if not self.has_region(region):
            raise NotFoundError("Region not found")
        if not str(number).isdigit() or not 0 < int(number) <= self.store.newest(region):
            raise NotFoundError("Deployment not found")
        return str(int(number))

    async def get_deployment(self, region: str, number: str) -> tuple[Deployment, bool]:
        """Return a deployment record and whether it is the live record.

        The in-flight deployment is returned as the live, possibly
        unfinished object; everything else is read from the store.

        Raises:
            NotFoundError: If the region or deployment does not exist, or the
                persisted record cannot be read
        """
        number = self._check_number(region, number)
        current = self._current
        if current is not None and current.region == region and current.name == number:
            return current, True

        try:
            return await self.store.read(region, number), False
        except PersistenceError as e:
            logger.error(f"Deployment #{number} of {self.name}:{region} unreadable: {e}")
            raise NotFoundError("Deployment not found") from e

    async def get_deployment_summary(self, region: str, number: str) -> DeploymentSummary:
        """Return a deployment without its log."""
        deployment, _ = await self.get_deployment(region, number)
        return deployment.summary()

    async def get_deployment_summaries(
        self, region: str, limit: int = PAGE_SIZE
    ) -> list[DeploymentSummary]:
        """Return up to ``limit`` most recent deployments, newest first.

        Numbers whose record is missing or unreadable are skipped.
        """
        if not self.has_region(region):
            raise NotFoundError("Region not found")

        summaries: list[DeploymentSummary] = []
        for number in self.store.recent_numbers(region, limit):
            try:
                summaries.append(await self.get_deployment_summary(region, number))
            except NotFoundError:
                logger.warning(f"Skipping missing deployment #{number} of {self.name}:{region}")
        return summaries

    async def get_deployment_log(
        self,
        region: str,
        number: str,
        from_index: int = 0,
        stream: bool = True,
        timeout: float | None = None,
    ) -> DeploymentLogReader:
        """Return a reader over a deployment's log.

        Args:
            region: Region name
            number: Deployment number
            from_index: First log index to deliver
            stream: Follow until the end (True) or return one segment (False)
            timeout: Segment mode wait limit in seconds

        Raises:
            NotFoundError: If the deployment does not exist
        """
        deployment, live = await self.get_deployment(region, number)
        return self.logbus.reader(
            deployment, live=live, from_index=from_index, stream=stream, timeout=timeout
        )

    def running_status(self) -> RunningStatus:
        """Return whether a deployment is in flight and which one."""
        current = self._current
        return RunningStatus(
            stack=self.name,
            running=current is not None,
            info=current.summary() if current is not None else None,
        )

    # -- running -----------------------------------------------------------------

    async def run(self, target: str, region: str, revision: str, user: str) -> str:
        """Start a deployment of ``target`` to ``region``.

        Returns as soon as the deployment has a number and holds its locks;
        the tasks keep running in the background.

        Returns:
            The deployment number

        Raises:
            NotFoundError: If the region or target is unknown
            StackLockedError: If the stack or a named lock is busy
            RevisionLookupError: If the deployed revision cannot be looked up
        """
        if not self.has_region(region):
            raise NotFoundError("Region not found")

        tasks = self.get_target(target) if target != FINALLY_TARGET else None
        if tasks is None:
            raise NotFoundError("Target not found")

        if self._current is not None:
            raise StackLockedError(self._current.summary())

        args = RunArgs(
            dry_run=self.stack_config.dryrun_for(region),
            environment=self.config.env,
            region=region,
            revision=revision,
            user=user,
        )
        from_revision = await self.get_deployed_revision(region)

        runner = DeploymentRunner(
            self,
            target,
            tasks,
            self.module.finally_target,
            args,
            from_revision,
        )
        number = runner.start()
        self._runner = runner

        lock = self._file_lock
        if lock is not None and runner.deployment is not None:
            try:
                await asyncio.to_thread(lock.record_holder, runner.deployment.summary())
            except OSError as e:
                logger.warning(f"Could not record deployment #{number} in {lock.path}: {e}")
        return number

    async def join(self) -> None:
        """Wait for the in-flight deployment, if any, to finish."""
        runner = self._runner
        if runner is not None:
            await runner.wait()
