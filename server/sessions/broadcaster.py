"""
Event Broadcaster - server/sessions/broadcaster.py

Fans per-account lifecycle events out to every open subscription (one per
SSE connection). Delivery to local subscribers never yields, so each
subscriber sees an account's events in the order publish() was called.

Usage:
    broadcaster = EventBroadcaster()
    subscription = broadcaster.subscribe("alice")
    await broadcaster.publish("alice", "ready", {"message": "Connected and ready"})
    async for frame in subscription.stream():
        ...
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from server.core.monitoring import log_event, log_exception

# Receives every published event after local delivery (e.g. the Redis mirror)
EventSink = Callable[[str, str, Any], Awaitable[None]]

KEEPALIVE_FRAME = ": keepalive\n\n"


class SubscriptionClosed(Exception):
    """Write attempted on a subscription that can no longer receive events."""


def format_sse(event_type: str, data: Any) -> str:
    """Encode one Server-Sent Event frame."""
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


class Subscription:
    """One listener's output channel for an account's events."""

    def __init__(self, account_id: str, max_pending: int = 100):
        self.id = uuid.uuid4().hex
        self.account_id = account_id
        self.max_pending = max_pending
        self.closed = False
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def send(self, event_type: str, data: Any) -> None:
        """Queue an event frame. Raises SubscriptionClosed if it cannot be delivered."""
        if self.closed:
            raise SubscriptionClosed(self.id)
        if self._queue.qsize() >= self.max_pending:
            # Reader stopped draining; treat it as a dead connection
            raise SubscriptionClosed(self.id)
        self._queue.put_nowait(format_sse(event_type, data))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(None)

    async def stream(self, keepalive: Optional[float] = None) -> AsyncIterator[str]:
        """
        Yield queued frames until the subscription is closed.

        With `keepalive`, a comment frame is yielded after that many idle seconds.
        """
        while True:
            try:
                frame = await asyncio.wait_for(self._queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if frame is None:
                return
            yield frame

    def __repr__(self) -> str:
        return f"Subscription(account_id={self.account_id!r}, id={self.id!r})"


class EventBroadcaster:
    """Account id → subscriptions, with best-effort fan-out."""

    def __init__(
        self,
        sinks: Optional[List[EventSink]] = None,
        max_pending: int = 100,
    ):
        self._subscribers: Dict[str, Dict[str, Subscription]] = {}
        self._sinks: List[EventSink] = list(sinks or [])
        self.max_pending = max_pending

    def add_sink(self, sink: EventSink) -> None:
        self._sinks.append(sink)

    def subscribe(self, account_id: str) -> Subscription:
        subscription = Subscription(account_id, max_pending=self.max_pending)
        self._subscribers.setdefault(account_id, {})[subscription.id] = subscription
        log_event(
            "sse_subscribed",
            level="debug",
            account_id=account_id,
            subscription_id=subscription.id,
            subscribers=len(self._subscribers[account_id]),
        )
        return subscription

    def unsubscribe(
        self, account_id: str, subscription: Union[Subscription, str]
    ) -> bool:
        """Remove and close a subscription. Returns False if it was already gone."""
        subscription_id = (
            subscription.id if isinstance(subscription, Subscription) else subscription
        )
        subscribers = self._subscribers.get(account_id)
        if not subscribers:
            return False

        removed = subscribers.pop(subscription_id, None)
        if not subscribers:
            del self._subscribers[account_id]
        if removed is None:
            return False

        removed.close()
        log_event(
            "sse_unsubscribed",
            level="debug",
            account_id=account_id,
            subscription_id=subscription_id,
        )
        return True

    def subscribers(self, account_id: str) -> List[Subscription]:
        return list(self._subscribers.get(account_id, {}).values())

    def subscriber_count(self, account_id: str) -> int:
        return len(self._subscribers.get(account_id, {}))

    def close_all(self) -> None:
        """Close every subscription (application shutdown)."""
        for account_id in list(self._subscribers):
            for subscription in self.subscribers(account_id):
                self.unsubscribe(account_id, subscription)

    async def publish(self, account_id: str, event_type: str, data: Any) -> int:
        """
        Write an event to every live subscriber of `account_id`.

        Subscribers whose write fails are pruned; the rest still receive it.
        Returns the number of subscribers the event was delivered to.
        """
        delivered = 0
        for subscription in self.subscribers(account_id):
            try:
                subscription.send(event_type, data)
                delivered += 1
            except SubscriptionClosed:
                self.unsubscribe(account_id, subscription)
                log_event(
                    "sse_subscriber_pruned",
                    level="debug",
                    account_id=account_id,
                    subscription_id=subscription.id,
                )

        for sink in self._sinks:
            try:
                await sink(account_id, event_type, data)
            except Exception as e:
                log_exception(
                    "event_sink_failed", e,
                    account_id=account_id, event_type=event_type,
                )

        return delivered
