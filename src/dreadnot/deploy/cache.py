"""Time-to-live cache with single-flight refreshes.

Used by stacks to avoid hammering an upstream revision source: however many
callers ask for the same key while it is stale, the upstream is asked once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from dreadnot.lib.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """One cache slot.

    Attributes:
        key: Cache key within the owning cache
        expires_at: Clock value after which the value is stale
        value: Last fetched value
        waiters: Futures of callers waiting on an in-flight refresh, or None
            when no refresh is running
    """

    key: str
    expires_at: float | None = None
    value: Any = None
    waiters: list[asyncio.Future[Any]] | None = field(default=None, repr=False)

    @property
    def refreshing(self) -> bool:
        """Whether a refresh is currently in flight."""
        return self.waiters is not None


class RevisionCache:
    """Per-key memoizing cache with request coalescing.

    There is exactly one slot per key and no eviction besides the TTL. A
    failed refresh is never cached: the entry is dropped so the next call
    fetches again.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the cache.

        Args:
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._refreshes: set[asyncio.Task[None]] = set()
        self.fetch_count = 0

    def peek(self, key: str) -> CacheEntry | None:
        """Return the raw entry for ``key`` without triggering a fetch."""
        return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        """Drop ``key`` unless a refresh for it is in flight."""
        entry = self._entries.get(key)
        if entry is not None and not entry.refreshing:
            del self._entries[key]

    async def get_cached(
        self,
        key: str,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value for ``key``, refreshing it when stale.

        Args:
            key: Cache key
            ttl: Seconds a freshly fetched value stays valid
            fetch: Coroutine factory producing the upstream value

        Returns:
            The cached or freshly fetched value

        Raises:
            Exception: Whatever ``fetch`` raised, delivered to every caller
                that was waiting on that refresh
        """
        entry = self._entries.get(key)

        if entry is not None and entry.refreshing:
            return await self._add_waiter(entry)

        if (
            entry is not None
            and entry.expires_at is not None
            and self._clock() <= entry.expires_at
        ):
            return entry.value

        if entry is None:
            entry = CacheEntry(key=key)
            self._entries[key] = entry

        # Registering the first waiter and starting the refresh happen without
        # a suspension point, so concurrent callers always see `refreshing`.
        entry.waiters = []
        waiter = self._add_waiter(entry)
        self.fetch_count += 1
        task = asyncio.ensure_future(self._refresh(entry, ttl, fetch))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        return await waiter

    def _add_waiter(self, entry: CacheEntry) -> asyncio.Future[Any]:
        waiter: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        assert entry.waiters is not None
        entry.waiters.append(waiter)
        return waiter

    def _drop(self, entry: CacheEntry) -> list[asyncio.Future[Any]]:
        waiters = entry.waiters or []
        entry.waiters = None
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        return waiters

    async def _refresh(
        self,
        entry: CacheEntry,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> None:
        try:
            value = await fetch()
        except asyncio.CancelledError:
            for waiter in self._drop(entry):
                waiter.cancel()
            raise
        except Exception as exc:
            logger.warning(f"Refreshing cache key '{entry.key}' failed: {exc}")
            for waiter in self._drop(entry):
                if not waiter.done():
                    waiter.set_exception(exc)
            return

        entry.value = value
        entry.expires_at = self._clock() + ttl
        waiters = entry.waiters or []
        entry.waiters = None
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(value)
