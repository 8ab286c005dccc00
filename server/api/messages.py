"""
Message API endpoints - send text/media and list delivery records.
"""

from typing import Optional

from fastapi import APIRouter, Query

from server.core.errors import PersistenceFailure
from server.dependencies import ContextDep
from server.schemas.messages import (
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from server.services import messaging

router = APIRouter(tags=["Messages"])


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(data: SendMessageRequest, context: ContextDep):
    """
    Send a text or media message from one account.

    `accountId` defaults to the configured default account. Fails with 400
    when the phone number is invalid or the account's client is not ready.
    """
    account_id = data.account_id or context.settings.DEFAULT_ACCOUNT_ID

    outcome = await messaging.send_message(
        context,
        account_id=account_id,
        phone=data.phone,
        message=data.message,
        media_url=data.media.url if data.media else None,
        media_caption=data.media.caption if data.media else None,
    )

    return SendMessageResponse(
        message=f"Message sent to {data.phone}",
        account_id=outcome.account_id,
        phone=outcome.phone,
        chat_id=outcome.chat_id,
        message_id=outcome.provider_message_id,
        record_id=outcome.record_id,
    )


@router.get("/messages", response_model=MessageListResponse)
async def list_messages(
    context: ContextDep,
    account_id: Optional[str] = Query(None, alias="accountId"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List delivery records, newest first."""
    if context.message_log is None:
        raise PersistenceFailure("Message logging is not enabled")

    messages, total = await context.message_log.list_messages(
        account_id=account_id, limit=limit, offset=offset
    )

    return MessageListResponse(
        messages=[MessageResponse.model_validate(m) for m in messages],
        total=total,
        limit=limit,
        offset=offset,
    )
