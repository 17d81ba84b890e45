"""In-memory publish/subscribe keyed by dot-joined paths.

Subscribers own an ``asyncio.Queue``; publishing never suspends, so a
subscriber registered in the same synchronous step as a state snapshot
cannot miss an event published after that snapshot.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from dreadnot.lib.logging_config import get_logger

logger = get_logger(__name__)


def event_path(*parts: str) -> str:
    """Join path segments into an event path."""
    return ".".join(parts)


@dataclass(frozen=True)
class BusEvent:
    """An event delivered to a subscriber queue."""

    topic: str
    payload: Any


@dataclass(eq=False)
class Subscription:
    """A registration of a queue on one topic.

    Attributes:
        topic: Exact event path subscribed to
        queue: Queue receiving ``BusEvent`` items
        once: Remove the subscription after its first delivery
    """

    topic: str
    queue: asyncio.Queue[BusEvent] = field(repr=False)
    once: bool = False
    active: bool = True

    async def get(self) -> BusEvent:
        """Wait for the next event on this subscription's queue."""
        return await self.queue.get()


class EventBus:
    """Topic registry for deployment logs and notifications."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._topics: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(
        self,
        topic: str,
        queue: asyncio.Queue[BusEvent] | None = None,
        *,
        once: bool = False,
    ) -> Subscription:
        """Register a subscription on ``topic``.

        Several subscriptions may share one queue to receive events from
        several topics in publication order.

        Args:
            topic: Event path to subscribe to
            queue: Queue to deliver into, a new one when omitted
            once: Fire once and remove

        Returns:
            The new subscription
        """
        subscription = Subscription(
            topic=topic, queue=queue if queue is not None else asyncio.Queue(), once=once
        )
        self._topics[topic].append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Removing twice is harmless."""
        subscription.active = False
        subscribers = self._topics.get(subscription.topic)
        if not subscribers:
            return
        try:
            subscribers.remove(subscription)
        except ValueError:
            pass
        if not subscribers:
            del self._topics[subscription.topic]

    def publish(self, topic: str, payload: Any = None) -> int:
        """Deliver ``payload`` to every subscriber of ``topic``.

        Returns:
            Number of subscriptions the event was delivered to
        """
        subscribers = self._topics.get(topic)
        if not subscribers:
            return 0

        delivered = 0
        event = BusEvent(topic=topic, payload=payload)
        for subscription in list(subscribers):
            subscription.queue.put_nowait(event)
            delivered += 1
            if subscription.once:
                self.unsubscribe(subscription)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        """Return the number of subscriptions on ``topic``."""
        return len(self._topics.get(topic, ()))
