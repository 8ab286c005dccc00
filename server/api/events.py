"""
Account Event Stream - Server-Sent Events relay of provider lifecycle events.
"""

from typing import AsyncIterator

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from server.core.monitoring import log_event
from server.dependencies import ContextDep
from server.sessions.broadcaster import EventBroadcaster, Subscription
from server.sessions.registry import validate_account_id

router = APIRouter(prefix="/accounts", tags=["Events"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


async def _event_stream(
    request: Request,
    broadcaster: EventBroadcaster,
    subscription: Subscription,
    keepalive: float,
) -> AsyncIterator[str]:
    """Drain the subscription until the listener goes away or it is closed."""
    try:
        async for frame in subscription.stream(keepalive=keepalive):
            if await request.is_disconnected():
                break
            yield frame
    finally:
        broadcaster.unsubscribe(subscription.account_id, subscription)
        log_event(
            "sse_stream_closed",
            level="debug",
            account_id=subscription.account_id,
            subscription_id=subscription.id,
        )


@router.get("/{account_id}/events")
async def account_events(account_id: str, request: Request, context: ContextDep):
    """
    Open an SSE stream of the account's lifecycle events.

    The first frame is always `connected`. A listener joining an already
    ready session also gets a `ready` frame; nothing else is replayed.
    Starts the account's provider client if it is not running yet.
    """
    account_id = validate_account_id(account_id)

    subscription = context.broadcaster.subscribe(account_id)
    subscription.send(
        "connected", {"message": "Connected to SSE", "accountId": account_id}
    )

    session = context.registry.get_or_create(account_id)
    if session.ready:
        subscription.send("ready", {"message": "Connected and ready"})

    return StreamingResponse(
        _event_stream(
            request,
            context.broadcaster,
            subscription,
            context.settings.SSE_KEEPALIVE_SECONDS,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
