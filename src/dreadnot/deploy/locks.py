"""Process-wide named lock table.

Named locks let stacks that share a resource (a build host, a database, a
whole region) refuse to deploy concurrently. Acquisition never waits: a
conflicting request fails immediately and reports who holds the lock.
"""

from __future__ import annotations

from collections.abc import Iterable

from dreadnot.lib.errors import StackLockedError
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.deployment import DeploymentSummary

logger = get_logger(__name__)


class LockRegistry:
    """Named locks held by deployments.

    ``acquire`` and ``release`` never suspend, so a check and the matching
    set cannot interleave with another coroutine.
    """

    def __init__(self) -> None:
        """Initialize an empty lock table."""
        self._locks: dict[str, DeploymentSummary] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    def holder(self, name: str) -> DeploymentSummary | None:
        """Return the deployment holding ``name``, if any."""
        return self._locks.get(name)

    def acquire(self, names: Iterable[str], holder: DeploymentSummary) -> None:
        """Lock every name in ``names`` for ``holder``, or none of them.

        Args:
            names: Lock names to acquire as one batch
            holder: Deployment that will own the locks

        Raises:
            StackLockedError: If any name is already held. Carries the
                existing holder; nothing is locked in that case.
        """
        names = list(names)
        for name in names:
            existing = self._locks.get(name)
            if existing is not None:
                logger.info(
                    f"Lock '{name}' held by deployment #{existing.name} of "
                    f"{existing.stack_name}:{existing.region}"
                )
                raise StackLockedError(existing)

        for name in names:
            self._locks[name] = holder
        if names:
            logger.debug(
                f"Deployment #{holder.name} of {holder.stack_name} locked {names}"
            )

    def release(self, names: Iterable[str]) -> None:
        """Release every name in ``names`` regardless of holder."""
        for name in names:
            self._locks.pop(name, None)
