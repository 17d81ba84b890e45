"""Task pipeline that executes one deployment.

A runner moves through ``PENDING -> RUNNING_MAIN -> RUNNING_FINALLY ->
FINISHED``. ``start`` claims the stack, allocates the deployment number and
takes the named locks in one non-suspending step, then schedules execution in
the background and returns the number to the caller. Task failures are
recorded in the deployment log and decide ``success``; they are never raised
to the caller of ``start``.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING

from dreadnot.config.defaults import FINALLY_TARGET
from dreadnot.deploy.baton import Baton, BatonLogger
from dreadnot.deploy.module import call_maybe_async
from dreadnot.lib.errors import PersistenceError, StackLockedError, TaskError
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.deployment import Deployment, RunArgs, now_ms

if TYPE_CHECKING:
    from dreadnot.deploy.stack import Stack

logger = get_logger(__name__)


class RunnerState(str, Enum):
    """Lifecycle states of a deployment runner."""

    PENDING = "pending"
    RUNNING_MAIN = "running_main"
    RUNNING_FINALLY = "running_finally"
    FINISHED = "finished"


class DeploymentRunner:
    """Runs a target and the ``finally`` target of a stack for one region.

    Attributes:
        stack: Stack being deployed
        target: Name of the main target
        tasks: Task names of the main target, in order
        finally_tasks: Task names of the ``finally`` target, or None
        args: Arguments passed to every task
        from_revision: Revision deployed before this run
        state: Current lifecycle state
        deployment: The deployment record, set by ``start``
    """

    def __init__(
        self,
        stack: Stack,
        target: str,
        tasks: list[str],
        finally_tasks: list[str] | None,
        args: RunArgs,
        from_revision: str | None,
    ) -> None:
        """Prepare a runner; nothing is claimed until ``start``."""
        self.stack = stack
        self.target = target
        self.tasks = tasks
        self.finally_tasks = finally_tasks
        self.args = args
        self.from_revision = from_revision
        self.state = RunnerState.PENDING
        self.deployment: Deployment | None = None
        self.baton: Baton | None = None
        self.lock_names: list[str] = []
        self._task: asyncio.Task[None] | None = None

    def start(self) -> str:
        """Claim the stack and locks, then schedule execution.

        Returns:
            The allocated deployment number

        Raises:
            StackLockedError: If the stack is already deploying or a named
                lock is held. No state is created in that case.
        """
        if self.state is not RunnerState.PENDING:
            raise RuntimeError("DeploymentRunner.start() called twice")

        stack = self.stack
        region = self.args.region

        current = stack.current
        if current is not None:
            raise StackLockedError(current.summary())

        deployment = Deployment(
            name=stack.store.next_number(region),
            stack_name=stack.name,
            region=region,
            environment=self.args.environment,
            from_revision=self.from_revision,
            to_revision=self.args.revision,
            time=now_ms(),
            user=self.args.user,
        )

        lock_names = stack.get_lock_names(self.args)
        stack.locks.acquire(lock_names, deployment.summary())

        stack.store.allocate_number(region)
        stack._set_current(deployment)
        self.deployment = deployment
        self.lock_names = lock_names

        self.baton = Baton(
            deployment,
            BatonLogger(
                stack.logger,
                sink=partial(stack.logbus.emit, deployment),
                extra={"stack": stack.name, "region": region, "deployment": deployment.name},
            ),
        )

        stack.notify_started(deployment)
        logger.info(
            f"Deployment #{deployment.name} of {stack.name}:{region} started by "
            f"{deployment.user} ({deployment.from_revision} -> {deployment.to_revision})"
        )

        self.state = RunnerState.RUNNING_MAIN
        self._task = asyncio.create_task(
            self._execute(), name=f"deploy-{stack.name}-{region}-{deployment.name}"
        )
        self._task.add_done_callback(self._on_done)
        return deployment.name

    async def wait(self) -> None:
        """Wait until the deployment has finished and been cleaned up."""
        if self._task is not None:
            await asyncio.shield(self._task)

    @property
    def done(self) -> bool:
        """Whether execution has completed."""
        return self._task is not None and self._task.done()

    async def _execute(self) -> None:
        assert self.deployment is not None and self.baton is not None
        log = self.baton.log
        started = time.monotonic()
        success = False

        try:
            log.info(
                "Starting deployment ${deployment} of target '${target}'",
                deployment=self.deployment.name,
                target=self.target,
            )

            main_error = await self._run_target(self.tasks, stop_on_error=True)
            seconds = round(time.monotonic() - started, 3)

            if self.finally_tasks is not None:
                if main_error is not None:
                    log.error(
                        "Target '${target}' FAILED in ${seconds}s",
                        target=self.target,
                        seconds=seconds,
                        err=str(main_error),
                    )

                self.state = RunnerState.RUNNING_FINALLY
                finally_error = await self._run_target(
                    self.finally_tasks, stop_on_error=False
                )
                finally_seconds = round(time.monotonic() - started, 3)

                if finally_error is not None:
                    log.error(
                        "Target '${target}' FAILED in ${seconds}s",
                        target=FINALLY_TARGET,
                        seconds=finally_seconds,
                        err=str(finally_error),
                    )
                elif main_error is not None:
                    log.error(
                        "Target 'finally' SUCCESS in ${seconds}s, "
                        "but target '${target}' FAILED",
                        target=self.target,
                        seconds=finally_seconds,
                        err=str(main_error),
                    )
                else:
                    success = True
                    log.info(
                        "Target '${target}' SUCCESS in ${seconds}s",
                        target=self.target,
                        seconds=finally_seconds,
                    )
            elif main_error is not None:
                log.error(
                    "Target '${target}' FAILED in ${seconds}s",
                    target=self.target,
                    seconds=seconds,
                    err=str(main_error),
                )
            else:
                success = True
                log.info(
                    "Target '${target}' SUCCESS in ${seconds}s",
                    target=self.target,
                    seconds=seconds,
                )
        finally:
            await self._finish(success)

    async def _run_target(
        self, task_names: list[str], *, stop_on_error: bool
    ) -> TaskError | None:
        """Run tasks in order and return the first error, if any."""
        first_error: TaskError | None = None
        for name in task_names:
            error = await self._run_task(name)
            if error is None:
                continue
            if first_error is None:
                first_error = error
            if stop_on_error:
                break
        return first_error

    async def _run_task(self, name: str) -> TaskError | None:
        assert self.baton is not None
        log = self.baton.log
        task = self.stack.module.tasks[name]

        log.info("executing task ${task}", task=name)
        start_time = int(time.time())
        started = time.monotonic()
        error: TaskError | None = None

        try:
            await call_maybe_async(task, self.stack, self.baton, self.args)
        except Exception as e:
            error = TaskError(name, e)

        context = {
            "task": name,
            "start_time": start_time,
            "end_time": int(time.time()),
            "took": round(time.monotonic() - started, 3),
        }
        if error is not None:
            log.error("task ${task} finished", err=error.cause, **context)
        else:
            log.info("task ${task} finished", **context)
        return error

    async def _finish(self, success: bool) -> None:
        assert self.deployment is not None
        deployment = self.deployment
        stack = self.stack

        deployment.finalize(success)
        self.state = RunnerState.FINISHED

        try:
            await stack.store.persist(deployment)
        except PersistenceError as e:
            logger.critical(
                f"Deployment #{deployment.name} of {stack.name}:{deployment.region} "
                f"was not persisted, numbering will repeat after a restart: {e}"
            )
        finally:
            stack._clear_current(deployment)
            stack.locks.release(self.lock_names)
            stack.logbus.end(deployment)

        logger.info(
            f"Deployment #{deployment.name} of {stack.name}:{deployment.region} "
            f"finished: {'success' if success else 'failure'}"
        )

    def _on_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            logger.warning(f"Deployment task {task.get_name()} was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Deployment task {task.get_name()} crashed: {exc}", exc_info=exc)
