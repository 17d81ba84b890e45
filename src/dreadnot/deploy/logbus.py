"""Deployment log distribution.

Every log entry is appended to its deployment record and published on the
deployment's ``.log`` path in one step. Readers replay what the record
already holds and then follow the bus, either until the deployment ends
(stream mode) or until the next batch of activity (segment mode).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Literal

from dreadnot.deploy.events import BusEvent, EventBus, Subscription, event_path
from dreadnot.models.deployment import Deployment, LogEntry

LogEventKind = Literal["data", "end", "segment"]


def deployment_path(stack: str, region: str, number: str) -> str:
    """Return the event path prefix of a deployment."""
    return event_path("stacks", stack, "regions", region, "deployments", number)


@dataclass(frozen=True)
class PublishedEntry:
    """Payload of a ``.log`` event: the entry and its index in the log."""

    index: int
    entry: LogEntry


@dataclass(frozen=True)
class LogEvent:
    """An item produced by a ``DeploymentLogReader``.

    ``data`` carries one entry, ``end`` carries the deployment outcome and
    ``segment`` marks the end of a catch-up batch of an unfinished deployment.
    """

    kind: LogEventKind
    index: int | None = None
    entry: LogEntry | None = None
    success: bool | None = None

    @classmethod
    def data(cls, index: int, entry: LogEntry) -> LogEvent:
        return cls(kind="data", index=index, entry=entry)

    @classmethod
    def end(cls, success: bool) -> LogEvent:
        return cls(kind="end", success=success)

    @classmethod
    def segment(cls) -> LogEvent:
        return cls(kind="segment")


@dataclass
class LogSegment:
    """One catch-up batch of a deployment log.

    Attributes:
        entries: Entries from the requested index onwards
        next_index: Index to request next
        finished: Whether the deployment has ended
        success: Outcome once finished
    """

    entries: list[LogEntry] = field(default_factory=list)
    next_index: int = 0
    finished: bool = False
    success: bool | None = None


class DeploymentLogReader:
    """Reads one deployment's log in stream or segment mode.

    Iterate with ``async for event in reader``. Stream mode yields every
    entry from ``from_index`` followed by exactly one ``end`` event. Segment
    mode yields the entries available now (waiting for the next one when
    there are none) followed by ``segment`` or ``end``.
    """

    def __init__(
        self,
        bus: EventBus,
        deployment: Deployment,
        *,
        live: bool,
        from_index: int = 0,
        stream: bool = True,
        timeout: float | None = None,
    ) -> None:
        """Initialize the reader.

        Args:
            bus: Event bus the deployment publishes on
            deployment: The deployment record, live or loaded from disk
            live: Whether ``deployment`` is the in-flight record that still
                publishes events. Persisted records never subscribe.
            from_index: First log index to deliver
            stream: Stream mode when True, segment mode otherwise
            timeout: Segment mode only, seconds to wait for new activity
                before returning an empty segment
        """
        self.bus = bus
        self.deployment = deployment
        self.live = live
        self.from_index = max(0, from_index)
        self.stream = stream
        self.timeout = timeout

        path = deployment_path(deployment.stack_name, deployment.region, deployment.name)
        self.log_path = event_path(path, "log")
        self.end_path = event_path(path, "end")

    def __aiter__(self) -> AsyncIterator[LogEvent]:
        return self._stream() if self.stream else self._segment()

    def _follows(self) -> bool:
        return self.live and not self.deployment.finished

    def _subscribe(self) -> tuple[asyncio.Queue[BusEvent], list[Subscription]]:
        queue: asyncio.Queue[BusEvent] = asyncio.Queue()
        subscriptions = [
            self.bus.subscribe(self.log_path, queue),
            self.bus.subscribe(self.end_path, queue, once=True),
        ]
        return queue, subscriptions

    def _unsubscribe(self, subscriptions: list[Subscription]) -> None:
        for subscription in subscriptions:
            self.bus.unsubscribe(subscription)

    def _buffered(self) -> list[LogEvent]:
        entries = self.deployment.log[self.from_index :]
        return [
            LogEvent.data(self.from_index + offset, entry)
            for offset, entry in enumerate(entries)
        ]

    async def _stream(self) -> AsyncIterator[LogEvent]:
        queue: asyncio.Queue[BusEvent] | None = None
        subscriptions: list[Subscription] = []
        # Subscribe and snapshot without suspending in between.
        if self._follows():
            queue, subscriptions = self._subscribe()
        replay = self._buffered()
        success = self.deployment.success

        try:
            for event in replay:
                yield event

            if queue is None:
                yield LogEvent.end(success)
                return

            while True:
                bus_event = await queue.get()
                if bus_event.topic == self.end_path:
                    yield LogEvent.end(bool(bus_event.payload))
                    return
                published: PublishedEntry = bus_event.payload
                if published.index >= self.from_index:
                    yield LogEvent.data(published.index, published.entry)
        finally:
            self._unsubscribe(subscriptions)

    async def _segment(self) -> AsyncIterator[LogEvent]:
        available = self._buffered()
        if available or not self._follows():
            for event in available:
                yield event
            if self._follows():
                yield LogEvent.segment()
            else:
                yield LogEvent.end(self.deployment.success)
            return

        queue, subscriptions = self._subscribe()
        try:
            while True:
                try:
                    bus_event = await asyncio.wait_for(queue.get(), self.timeout)
                except asyncio.TimeoutError:
                    yield LogEvent.segment()
                    return
                if bus_event.topic == self.end_path:
                    yield LogEvent.end(bool(bus_event.payload))
                    return
                published: PublishedEntry = bus_event.payload
                if published.index >= self.from_index:
                    yield LogEvent.data(published.index, published.entry)
                    yield LogEvent.segment()
                    return
        finally:
            self._unsubscribe(subscriptions)

    async def collect(self) -> list[LogEvent]:
        """Consume the reader and return every event it produced."""
        return [event async for event in self]

    async def read_segment(self) -> LogSegment:
        """Consume the reader as a single ``LogSegment``."""
        segment = LogSegment(next_index=self.from_index)
        async for event in self:
            if event.kind == "data":
                assert event.entry is not None and event.index is not None
                segment.entries.append(event.entry)
                segment.next_index = event.index + 1
            elif event.kind == "end":
                segment.finished = True
                segment.success = event.success
        return segment


class LogBus:
    """Appends deployment log entries and publishes them on the event bus."""

    def __init__(self, bus: EventBus) -> None:
        """Initialize with the orchestrator's event bus."""
        self.bus = bus

    def emit(self, deployment: Deployment, entry: LogEntry) -> int:
        """Append ``entry`` to the deployment log and publish it.

        Returns:
            Index of the entry in the log
        """
        index = deployment.append_log(entry)
        path = deployment_path(deployment.stack_name, deployment.region, deployment.name)
        self.bus.publish(event_path(path, "log"), PublishedEntry(index, entry))
        return index

    def end(self, deployment: Deployment) -> None:
        """Publish the end event of a finished deployment."""
        path = deployment_path(deployment.stack_name, deployment.region, deployment.name)
        self.bus.publish(event_path(path, "end"), deployment.success)

    def reader(
        self,
        deployment: Deployment,
        *,
        live: bool,
        from_index: int = 0,
        stream: bool = True,
        timeout: float | None = None,
    ) -> DeploymentLogReader:
        """Create a reader over ``deployment``'s log."""
        return DeploymentLogReader(
            self.bus,
            deployment,
            live=live,
            from_index=from_index,
            stream=stream,
            timeout=timeout,
        )
