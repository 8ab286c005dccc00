"""
Send-Message Use Case - server/services/messaging.py

Validates the request, requires a ready session, delegates to the
account's provider client and keeps the optional delivery log.

Flow: request → require_ready() → normalize phone → load media → log(sending)
      → provider.send_message() → log(delivered | failed)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from server.core.errors import InvalidArgument, PersistenceFailure, ProviderFailure
from server.core.monitoring import log_event, log_exception
from server.models.base import MessageStatus
from server.services.media import load_media
from server.sessions.context import SessionContext
from server.sessions.registry import validate_account_id
from server.whatsapp.phone import normalize_phone, to_chat_id
from server.whatsapp.provider import MessageContent


@dataclass
class SendOutcome:
    account_id: str
    phone: str
    chat_id: str
    provider_message_id: Optional[str] = None
    record_id: Optional[uuid.UUID] = None


async def send_message(
    context: SessionContext,
    *,
    account_id: str,
    phone: str,
    message: Optional[str],
    media_url: Optional[str] = None,
    media_caption: Optional[str] = None,
) -> SendOutcome:
    """
    Send one message through the account's provider client.

    Raises:
        InvalidArgument: bad account id, phone, or missing content
        NotReady: no session, or its client has not reached `ready`
        NotFound: local media file missing
        ProviderFailure: the provider rejected the send
    """
    settings = context.settings
    account_id = validate_account_id(account_id)

    if not phone:
        raise InvalidArgument("Phone number is required")
    if not message and not media_url:
        raise InvalidArgument("Message is required")

    session = context.registry.require_ready(account_id)

    digits = normalize_phone(
        phone,
        default_country_code=settings.DEFAULT_COUNTRY_CODE,
        national_length=settings.NATIONAL_NUMBER_LENGTH,
    )

    chat_id = to_chat_id(digits)
    if settings.VERIFY_RECIPIENTS:
        resolved = await session.client.get_number_id(digits)
        if not resolved:
            raise InvalidArgument(f"Number {digits} is not registered on WhatsApp")
        chat_id = resolved

    content: MessageContent = message or ""
    options = {}
    if media_url:
        content = await load_media(media_url, context.upload_dir)
        options["caption"] = media_caption or message or ""

    outcome = SendOutcome(account_id=account_id, phone=digits, chat_id=chat_id)
    outcome.record_id = await _record_attempt(
        context, outcome, message, media_url, media_caption
    )

    try:
        outcome.provider_message_id = await session.client.send_message(
            chat_id, content, options or None
        )
    except ProviderFailure as e:
        await _mark(context, outcome, MessageStatus.FAILED, error=e.message)
        raise
    except Exception as e:
        log_exception("provider_send_error", e, account_id=account_id, phone=digits)
        await _mark(context, outcome, MessageStatus.FAILED, error=str(e))
        raise ProviderFailure(str(e) or "Provider failed to send message") from e

    await _mark(context, outcome, MessageStatus.DELIVERED)

    log_event(
        "message_sent",
        account_id=account_id,
        phone=digits,
        media=bool(media_url),
    )
    return outcome


async def _record_attempt(
    context: SessionContext,
    outcome: SendOutcome,
    message: Optional[str],
    media_url: Optional[str],
    media_caption: Optional[str],
) -> Optional[uuid.UUID]:
    if context.message_log is None:
        return None
    try:
        return await context.message_log.record_attempt(
            account_id=outcome.account_id,
            phone=outcome.phone,
            chat_id=outcome.chat_id,
            content=message,
            media_url=media_url,
            media_caption=media_caption,
        )
    except PersistenceFailure:
        # Already logged; delivery does not depend on the record
        return None


async def _mark(
    context: SessionContext,
    outcome: SendOutcome,
    status: MessageStatus,
    error: Optional[str] = None,
) -> None:
    if context.message_log is None or outcome.record_id is None:
        return
    try:
        await context.message_log.mark(
            outcome.record_id,
            status,
            error=error,
            provider_message_id=outcome.provider_message_id,
        )
    except PersistenceFailure:
        log_event(
            "message_status_not_recorded",
            level="warning",
            account_id=outcome.account_id,
            status=status.value,
        )
