"""
Event Broadcaster Tests - tests/test_broadcaster.py

Fan-out, ordering, pruning and SSE framing.

Run with: python -m pytest tests/test_broadcaster.py -v
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from server.core import redis as redis_client
from server.sessions.broadcaster import (
    KEEPALIVE_FRAME,
    EventBroadcaster,
    Subscription,
    SubscriptionClosed,
    format_sse,
)

# =============================================================================
# FRAMING
# =============================================================================


def test_format_sse():
    frame = format_sse("qr", {"qr": "data:image/png;base64,xyz"})
    assert frame == 'event: qr\ndata: {"qr": "data:image/png;base64,xyz"}\n\n'


def test_subscription_send_after_close_raises():
    subscription = Subscription("alice")
    subscription.close()

    with pytest.raises(SubscriptionClosed):
        subscription.send("ready", {})


def test_subscription_close_is_idempotent():
    subscription = Subscription("alice")
    subscription.close()
    subscription.close()

    assert subscription.closed
    assert subscription.pending == 1  # single end-of-stream marker


@pytest.mark.asyncio
async def test_stream_ends_on_close():
    subscription = Subscription("alice")
    subscription.send("ready", {"message": "Connected and ready"})
    subscription.close()

    frames = [frame async for frame in subscription.stream()]

    assert frames == [format_sse("ready", {"message": "Connected and ready"})]


@pytest.mark.asyncio
async def test_stream_yields_keepalive_when_idle():
    subscription = Subscription("alice")
    stream = subscription.stream(keepalive=0.01)

    frame = await asyncio.wait_for(stream.__anext__(), timeout=1)

    assert frame == KEEPALIVE_FRAME
    await stream.aclose()


# =============================================================================
# SUBSCRIBE / UNSUBSCRIBE
# =============================================================================


class TestSubscriptions:
    """Subscription bookkeeping."""

    def test_multiple_subscriptions_per_account(self, broadcaster):
        first = broadcaster.subscribe("alice")
        second = broadcaster.subscribe("alice")

        assert first.id != second.id
        assert broadcaster.subscriber_count("alice") == 2
        assert broadcaster.subscriber_count("bob") == 0

    def test_unsubscribe_is_idempotent(self, broadcaster):
        subscription = broadcaster.subscribe("alice")

        assert broadcaster.unsubscribe("alice", subscription) is True
        assert broadcaster.unsubscribe("alice", subscription) is False
        assert broadcaster.unsubscribe("alice", subscription.id) is False
        assert broadcaster.unsubscribe("nobody", "missing") is False
        assert subscription.closed

    def test_unsubscribe_by_id(self, broadcaster):
        subscription = broadcaster.subscribe("alice")

        assert broadcaster.unsubscribe("alice", subscription.id) is True
        assert broadcaster.subscribers("alice") == []

    def test_close_all(self, broadcaster):
        subs = [broadcaster.subscribe("alice"), broadcaster.subscribe("bob")]

        broadcaster.close_all()

        assert all(s.closed for s in subs)
        assert broadcaster.subscriber_count("alice") == 0
        assert broadcaster.subscriber_count("bob") == 0


# =============================================================================
# PUBLISH
# =============================================================================


class TestPublish:
    """Delivery guarantees of publish()."""

    @pytest.mark.asyncio
    async def test_publish_without_subscribers_is_noop(self, broadcaster):
        delivered = await broadcaster.publish("ghost", "qr", {"qr": None})
        assert delivered == 0

    @pytest.mark.asyncio
    async def test_all_subscribers_receive_events_in_order(
        self, broadcaster, read_frames
    ):
        subs = [broadcaster.subscribe("alice") for _ in range(3)]

        await broadcaster.publish("alice", "qr", {"code": "1"})
        await broadcaster.publish("alice", "authenticated", {})
        await broadcaster.publish("alice", "ready", {})

        for sub in subs:
            frames = await read_frames(sub, 3)
            assert [t for t, _ in frames] == ["qr", "authenticated", "ready"]

    @pytest.mark.asyncio
    async def test_events_stay_within_account(self, broadcaster):
        alice = broadcaster.subscribe("alice")
        bob = broadcaster.subscribe("bob")

        await broadcaster.publish("alice", "ready", {})

        assert alice.pending == 1
        assert bob.pending == 0

    @pytest.mark.asyncio
    async def test_closed_subscriber_is_pruned_others_still_receive(
        self, broadcaster, read_frames
    ):
        alive_1 = broadcaster.subscribe("alice")
        dead = broadcaster.subscribe("alice")
        alive_2 = broadcaster.subscribe("alice")
        dead.close()

        delivered = await broadcaster.publish("alice", "disconnected", {"reason": "x"})

        assert delivered == 2
        assert dead not in broadcaster.subscribers("alice")
        assert broadcaster.subscriber_count("alice") == 2
        for sub in (alive_1, alive_2):
            assert await read_frames(sub, 1) == [("disconnected", {"reason": "x"})]

    @pytest.mark.asyncio
    async def test_backed_up_subscriber_is_pruned(self):
        broadcaster = EventBroadcaster(max_pending=2)
        stuck = broadcaster.subscribe("alice")

        await broadcaster.publish("alice", "loading", {"percent": 10})
        await broadcaster.publish("alice", "loading", {"percent": 20})
        delivered = await broadcaster.publish("alice", "loading", {"percent": 30})

        assert delivered == 0
        assert stuck.closed
        assert broadcaster.subscriber_count("alice") == 0

    @pytest.mark.asyncio
    async def test_sinks_receive_every_event(self):
        sink = AsyncMock()
        broadcaster = EventBroadcaster(sinks=[sink])

        await broadcaster.publish("alice", "ready", {"message": "ok"})

        sink.assert_awaited_once_with("alice", "ready", {"message": "ok"})

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_block_delivery(self, broadcaster):
        failing = AsyncMock(side_effect=RuntimeError("redis down"))
        healthy = AsyncMock()
        broadcaster.add_sink(failing)
        broadcaster.add_sink(healthy)
        subscription = broadcaster.subscribe("alice")

        delivered = await broadcaster.publish("alice", "ready", {})

        assert delivered == 1
        assert subscription.pending == 1
        healthy.assert_awaited_once()


@pytest.mark.asyncio
async def test_redis_mirror_sink():
    broadcaster = EventBroadcaster(sinks=[redis_client.mirror_event])

    with patch("server.core.redis.publish", new_callable=AsyncMock) as mock_publish:
        await broadcaster.publish("alice", "ready", {"message": "Connected and ready"})

    mock_publish.assert_awaited_once_with(
        "realtime:alice:events",
        {"type": "ready", "data": {"message": "Connected and ready"}},
    )
