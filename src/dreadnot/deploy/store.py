"""File-per-deployment persistence for a single stack.

Layout: ``<root>/<region>/<number>.json``. The newest number of each region
is recovered at startup by scanning file names and kept in memory afterwards.

The in-memory numbering is only authoritative inside one process. Processes
sharing a data root serialize deployments of a stack with ``StackFileLock``
and rescan the regions once they hold it.
"""

from __future__ import annotations

import asyncio
import fcntl
import os
import re
from pathlib import Path

from pydantic import ValidationError

from dreadnot.config.defaults import (
    PERSIST_ATTEMPTS,
    PERSIST_RETRY_DELAY,
    RECORD_SUFFIX,
)
from dreadnot.lib.errors import NotFoundError, PersistenceError, StackLockedError
from dreadnot.lib.logging_config import get_logger
from dreadnot.models.deployment import Deployment, DeploymentSummary

logger = get_logger(__name__)

RECORD_PATTERN = re.compile(r"^(\d+)" + re.escape(RECORD_SUFFIX) + r"$")


def find_newest_number(region_dir: Path) -> int:
    """Return the highest record number in ``region_dir``, 0 when empty.

    Files that are not named ``<digits>.json`` are ignored.
    """
    newest = 0
    for path in region_dir.iterdir():
        match = RECORD_PATTERN.match(path.name)
        if match:
            newest = max(newest, int(match.group(1)))
    return newest


class DeploymentStore:
    """Durable deployment records and per-region numbering for one stack."""

    def __init__(
        self,
        root: Path,
        attempts: int = PERSIST_ATTEMPTS,
        retry_delay: float = PERSIST_RETRY_DELAY,
    ) -> None:
        """Initialize the store.

        Args:
            root: Directory holding one sub-directory per region
            attempts: Write attempts before a persist fails
            retry_delay: Seconds between write attempts
        """
        self.root = root
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay
        self._newest: dict[str, int] = {}

    def record_path(self, region: str, number: str | int) -> Path:
        """Return the file path of a deployment record."""
        return self.root / region / f"{number}{RECORD_SUFFIX}"

    def has_region(self, region: str) -> bool:
        """Whether ``region`` has been initialized."""
        return region in self._newest

    def newest(self, region: str) -> int:
        """Return the newest deployment number of ``region``.

        Raises:
            NotFoundError: If the region is unknown
        """
        try:
            return self._newest[region]
        except KeyError:
            raise NotFoundError("Region not found") from None

    async def init_region(self, region: str) -> int:
        """Create the region directory and seed its newest number.

        Calling it again rescans the directory, picking up deployments
        persisted by other processes.

        Returns:
            The newest persisted deployment number (0 when none)

        Raises:
            PersistenceError: If the directory cannot be created or scanned
        """
        region_dir = self.root / region
        logger.debug(f"Ensuring region log directory {region_dir}")

        def _scan() -> int:
            region_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
            return find_newest_number(region_dir)

        try:
            newest = await asyncio.to_thread(_scan)
        except OSError as exc:
            raise PersistenceError("scan", str(region_dir), str(exc)) from exc

        # Never move backwards past a number this process already handed out
        newest = max(newest, self._newest.get(region, 0))
        self._newest[region] = newest
        logger.debug(f"Region {region} newest deployment is #{newest}")
        return newest

    def next_number(self, region: str) -> str:
        """Return the number the next deployment of ``region`` will get."""
        return str(self.newest(region) + 1)

    def allocate_number(self, region: str) -> str:
        """Commit and return the next deployment number of ``region``."""
        number = self.newest(region) + 1
        self._newest[region] = number
        return str(number)

    def recent_numbers(self, region: str, limit: int) -> list[str]:
        """Return up to ``limit`` newest deployment numbers, newest first."""
        newest = self.newest(region)
        return [str(n) for n in range(newest, max(newest - limit, 0), -1)]

    async def persist(self, deployment: Deployment) -> Path:
        """Write a finished deployment record to disk.

        Writing the same finished record again overwrites it with identical
        content. Failed writes are retried before giving up.

        Returns:
            Path of the written record

        Raises:
            ValueError: If the deployment is not finished
            PersistenceError: If every write attempt failed
        """
        if not deployment.finished:
            raise ValueError(
                f"Refusing to persist unfinished deployment #{deployment.name}"
            )

        path = self.record_path(deployment.region, deployment.name)
        payload = deployment.to_json()

        def _write() -> None:
            path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)

        last_error: OSError | None = None
        for attempt in range(1, self.attempts + 1):
            try:
                await asyncio.to_thread(_write)
                return path
            except OSError as exc:
                last_error = exc
                logger.warning(
                    f"Writing {path} failed (attempt {attempt}/{self.attempts}): {exc}"
                )
                if attempt < self.attempts:
                    await asyncio.sleep(self.retry_delay)

        raise PersistenceError("write", str(path), str(last_error))

    async def read(self, region: str, number: str) -> Deployment:
        """Read a persisted deployment record.

        Raises:
            NotFoundError: If the region or record does not exist
            PersistenceError: If the record cannot be read or parsed
        """
        if not self.has_region(region):
            raise NotFoundError("Region not found")

        path = self.record_path(region, number)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError("Deployment not found") from None
        except OSError as exc:
            raise PersistenceError("read", str(path), str(exc)) from exc

        try:
            return Deployment.model_validate_json(content)
        except ValidationError as exc:
            raise PersistenceError("parse", str(path), str(exc)) from exc


class StackFileLock:
    """Exclusive, non-blocking ``flock`` on a stack's lock file.

    Only one process sharing a data root can hold a stack's lock file. The
    holder writes the summary of its deployment into the file so a
    conflicting process can name it. The operating system drops the lock
    when the file is closed or the holding process exits.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        """Whether this object currently holds the lock."""
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock without waiting.

        Raises:
            StackLockedError: If another holder has the lock
            PersistenceError: If the lock file cannot be opened or locked
        """
        if self._fd is not None:
            return

        try:
            self.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as exc:
            raise PersistenceError("lock", str(self.path), str(exc)) from exc

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise StackLockedError(self.read_holder()) from None
        except OSError as exc:
            os.close(fd)
            raise PersistenceError("lock", str(self.path), str(exc)) from exc

        os.ftruncate(fd, 0)
        self._fd = fd
        logger.debug(f"Acquired {self.path}")

    def record_holder(self, deployment: DeploymentSummary) -> None:
        """Write the deployment holding the lock into the lock file."""
        if self._fd is None:
            return
        payload = deployment.model_dump_json(by_alias=True).encode("utf-8")
        os.ftruncate(self._fd, 0)
        os.pwrite(self._fd, payload, 0)

    def read_holder(self) -> DeploymentSummary | None:
        """Return the deployment recorded in the lock file, if any."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError:
            return None
        if not content.strip():
            return None
        try:
            return DeploymentSummary.model_validate_json(content)
        except ValidationError:
            return None

    def release(self) -> None:
        """Clear the holder and drop the lock."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.ftruncate(fd, 0)
        finally:
            os.close(fd)
        logger.debug(f"Released {self.path}")
