"""
Redis Client for the session service.
Handles the connection and the pub/sub mirror of account events.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from server.core.config import settings

logger = logging.getLogger(__name__)


# ============================================================================
# CHANNEL BUILDERS
# ============================================================================


def key_realtime(account_id: str, event_type: str = "events") -> str:
    """Pub/sub channel for real-time account events"""
    return f"realtime:{account_id}:{event_type}"


# ============================================================================
# REDIS CLIENT
# ============================================================================

_redis: Optional[Redis] = None
_redis_url: Optional[str] = None


async def get_redis() -> Redis:
    """
    Get Redis client.  Initializes connection on first call.

    Usage:
        redis = await get_redis()
        await redis.publish("channel", "value")
    """
    global _redis

    if _redis is None:
        url = _redis_url or settings.REDIS_URL
        if not url:
            raise RuntimeError("REDIS_URL not configured in settings")

        _redis = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )

        # Verify connection
        await _redis.ping()
        logger.info("✅ Redis connected")

    return _redis


async def close_redis() -> None:
    """Close Redis connection.  Call on app shutdown."""
    global _redis

    if _redis is not None:
        await _redis.close()
        _redis = None
        logger.info("✅ Redis closed")


async def redis_health() -> bool:
    """Check Redis connection health"""
    try:
        r = await get_redis()
        await r.ping()
        return True
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False


# ============================================================================
# PUB/SUB (Real-time Events)
# ============================================================================


async def publish(channel: str, data: dict) -> bool:
    """
    Publish message to channel.

    Usage:
        await publish(
            key_realtime(account_id),
            {"type": "ready", "data": {"message": "Connected and ready"}}
        )
    """
    try:
        r = await get_redis()
        await r.publish(channel, json.dumps(data))
        return True
    except RedisError as e:
        logger.error(f"publish failed [{channel}]: {e}")
        return False


async def mirror_event(account_id: str, event_type: str, payload: Any) -> None:
    """Event-broadcaster sink: republish an account event on its Redis channel."""
    await publish(key_realtime(account_id), {"type": event_type, "data": payload})


# ============================================================================
# FASTAPI INTEGRATION
# ============================================================================


async def startup(url: Optional[str] = None) -> None:
    """Call from FastAPI lifespan startup with the app's REDIS_URL"""
    global _redis_url

    _redis_url = url
    await get_redis()


async def shutdown() -> None:
    """Call from FastAPI lifespan shutdown"""
    global _redis_url

    await close_redis()
    _redis_url = None
