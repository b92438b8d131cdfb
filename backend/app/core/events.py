"""
Realtime Hub - in-process publish/subscribe

Row-level change notifications for online games and matchmaking queue
entries. Each subscriber owns a queue; one task drains it. Closing the
subscription is the cancellation.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)

_CLOSED = object()


def game_topic(game_id: int) -> str:
    return f"game:{game_id}"


def queue_topic(entry_id: int) -> str:
    return f"queue:{entry_id}"


class Subscription:
    def __init__(self, hub: "RealtimeHub", topic: str):
        self.hub = hub
        self.topic = topic
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def deliver(self, payload: Dict[str, Any]):
        if not self.closed:
            self.queue.put_nowait(payload)

    async def get(self, timeout: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """Next payload, or None once the subscription is closed."""
        if self.closed and self.queue.empty():
            return None
        item = await asyncio.wait_for(self.queue.get(), timeout=timeout)
        return None if item is _CLOSED else item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        item = await self.get()
        if item is None:
            raise StopAsyncIteration
        return item

    def close(self):
        """Idempotent."""
        if self.closed:
            return
        self.closed = True
        self.hub._remove(self)
        self.queue.put_nowait(_CLOSED)


class RealtimeHub:
    def __init__(self):
        self._subscribers: Dict[str, Set[Subscription]] = {}

    def subscribe(self, topic: str) -> Subscription:
        subscription = Subscription(self, topic)
        self._subscribers.setdefault(topic, set()).add(subscription)
        return subscription

    def _remove(self, subscription: Subscription):
        subscribers = self._subscribers.get(subscription.topic)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.topic]

    def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        """Fan out to every live subscriber of `topic`; returns how many got it."""
        subscribers = list(self._subscribers.get(topic, ()))
        for subscription in subscribers:
            subscription.deliver(payload)
        logger.debug("Published %s to %d subscriber(s)", topic, len(subscribers))
        return len(subscribers)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))


# Global hub instance
realtime_hub = RealtimeHub()
