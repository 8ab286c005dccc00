"""
Send-Message Tests - tests/test_messaging.py

The send use case against a fake provider, with and without the
message log.

Run with: python -m pytest tests/test_messaging.py -v
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from server.api import events as events_api
from server.api import messages as messages_api
from server.core.errors import InvalidArgument, NotFound, NotReady, ProviderFailure
from server.models.base import MessageStatus
from server.schemas.messages import SendMessageRequest
from server.services.media import save_upload
from server.services.message_log import MessageLog
from server.services.messaging import send_message
from server.sessions.context import build_context
from server.whatsapp import events
from server.whatsapp.provider import MediaPayload


async def _ready_client(context, account_id="alice"):
    session = context.registry.get_or_create(account_id)
    await session.client.emit(events.Ready())
    return session.client


# =============================================================================
# MESSAGE LOG
# =============================================================================


class TestMessageLog:
    """Delivery records in the messages table."""

    @pytest.mark.asyncio
    async def test_record_and_mark(self, session_maker):
        log = MessageLog(session_maker)

        record_id = await log.record_attempt(
            account_id="alice",
            phone="15551234567",
            chat_id="15551234567@c.us",
            content="Hello",
        )
        await log.mark(record_id, MessageStatus.DELIVERED, provider_message_id="wa-1")

        messages, total = await log.list_messages()
        assert total == 1
        assert messages[0].status == "delivered"
        assert messages[0].provider_message_id == "wa-1"
        assert messages[0].error is None

    @pytest.mark.asyncio
    async def test_list_filters_by_account(self, session_maker):
        log = MessageLog(session_maker)
        for account_id in ("alice", "alice", "bob"):
            await log.record_attempt(
                account_id=account_id,
                phone="15551234567",
                chat_id="15551234567@c.us",
                content="Hi",
            )

        alice, alice_total = await log.list_messages(account_id="alice")
        page, total = await log.list_messages(limit=1, offset=1)

        assert alice_total == 2
        assert {m.account_id for m in alice} == {"alice"}
        assert total == 3
        assert len(page) == 1


# =============================================================================
# SEND
# =============================================================================


class TestSendMessage:
    """send_message() use case."""

    @pytest.mark.asyncio
    async def test_send_text(self, context):
        client = await _ready_client(context)

        outcome = await send_message(
            context, account_id="alice", phone="+1 555 123 4567", message="Hello"
        )

        assert client.sent == [("15551234567@c.us", "Hello", None)]
        assert outcome.chat_id == "15551234567@c.us"
        assert outcome.provider_message_id == "msg-1"
        assert outcome.record_id is None

    @pytest.mark.asyncio
    async def test_not_ready_never_reaches_provider(self, context):
        session = context.registry.get_or_create("bob")

        with pytest.raises(NotReady, match="not ready"):
            await send_message(context, account_id="bob", phone="15551234567", message="Hi")

        assert session.client.sent == []

    @pytest.mark.asyncio
    async def test_no_session_is_not_ready(self, context, provider_factory):
        with pytest.raises(NotReady):
            await send_message(context, account_id="ghost", phone="15551234567", message="Hi")

        assert provider_factory.clients == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, context):
        await _ready_client(context)

        with pytest.raises(InvalidArgument, match="Phone number is required"):
            await send_message(context, account_id="alice", phone="", message="Hi")
        with pytest.raises(InvalidArgument, match="Message is required"):
            await send_message(context, account_id="alice", phone="15551234567", message="")

    @pytest.mark.asyncio
    async def test_invalid_phone(self, context):
        client = await _ready_client(context)

        with pytest.raises(InvalidArgument, match="Invalid phone number"):
            await send_message(context, account_id="alice", phone="123", message="Hi")

        assert client.sent == []

    @pytest.mark.asyncio
    async def test_country_code_from_settings(self, test_settings, provider_factory):
        test_settings.DEFAULT_COUNTRY_CODE = "91"
        context = build_context(test_settings, provider_factory)
        client = await _ready_client(context)

        await send_message(context, account_id="alice", phone="98765 43210", message="Hi")

        assert client.sent[0][0] == "919876543210@c.us"

    @pytest.mark.asyncio
    async def test_verify_recipients(self, test_settings, provider_factory):
        test_settings.VERIFY_RECIPIENTS = True
        context = build_context(test_settings, provider_factory)
        client = await _ready_client(context)
        client.numbers["15551234567"] = "15551234567@c.us"

        await send_message(context, account_id="alice", phone="15551234567", message="Hi")
        with pytest.raises(InvalidArgument, match="not registered on WhatsApp"):
            await send_message(context, account_id="alice", phone="15550000000", message="Hi")

        assert len(client.sent) == 1

    @pytest.mark.asyncio
    async def test_send_uploaded_media_caption_defaults_to_message(self, context):
        client = await _ready_client(context)
        url = await save_upload(context.upload_dir, "chart.png", b"\x89PNG-bytes")

        await send_message(
            context,
            account_id="alice",
            phone="15551234567",
            message="Monthly report",
            media_url=url,
        )

        chat_id, content, options = client.sent[0]
        assert isinstance(content, MediaPayload)
        assert content.mimetype == "image/png"
        assert options == {"caption": "Monthly report"}

    @pytest.mark.asyncio
    async def test_media_without_text(self, context):
        client = await _ready_client(context)
        url = await save_upload(context.upload_dir, "doc.pdf", b"%PDF")

        await send_message(
            context,
            account_id="alice",
            phone="15551234567",
            message=None,
            media_url=url,
            media_caption="Invoice",
        )

        assert client.sent[0][2] == {"caption": "Invoice"}

    @pytest.mark.asyncio
    async def test_missing_media_file(self, context):
        client = await _ready_client(context)

        with pytest.raises(NotFound):
            await send_message(
                context,
                account_id="alice",
                phone="15551234567",
                message="Hi",
                media_url="/uploads/missing.png",
            )

        assert client.sent == []

    @pytest.mark.asyncio
    async def test_provider_failure_passes_message_through(self, context):
        client = await _ready_client(context)
        client.send_error = ProviderFailure("Evaluation failed: chat not found")

        with pytest.raises(ProviderFailure, match="chat not found"):
            await send_message(context, account_id="alice", phone="15551234567", message="Hi")

    @pytest.mark.asyncio
    async def test_unexpected_provider_error_is_wrapped(self, context):
        client = await _ready_client(context)
        client.send_error = RuntimeError("socket hang up")

        with pytest.raises(ProviderFailure, match="socket hang up"):
            await send_message(context, account_id="alice", phone="15551234567", message="Hi")


class TestSendWithMessageLog:
    """Delivery records around the provider call."""

    @pytest.mark.asyncio
    async def test_delivered_record(self, test_settings, provider_factory, session_maker):
        context = build_context(test_settings, provider_factory, session_maker=session_maker)
        await _ready_client(context)

        outcome = await send_message(
            context, account_id="alice", phone="15551234567", message="Hello"
        )

        messages, _ = await context.message_log.list_messages(account_id="alice")
        assert [m.id for m in messages] == [outcome.record_id]
        assert messages[0].status == "delivered"
        assert messages[0].provider_message_id == "msg-1"
        assert messages[0].content == "Hello"

    @pytest.mark.asyncio
    async def test_failed_record(self, test_settings, provider_factory, session_maker):
        context = build_context(test_settings, provider_factory, session_maker=session_maker)
        client = await _ready_client(context)
        client.send_error = ProviderFailure("Phone not connected")

        with pytest.raises(ProviderFailure):
            await send_message(context, account_id="alice", phone="15551234567", message="Hi")

        messages, _ = await context.message_log.list_messages()
        assert messages[0].status == "failed"
        assert messages[0].error == "Phone not connected"

    @pytest.mark.asyncio
    async def test_logging_disabled(self, test_settings, provider_factory, session_maker):
        test_settings.PERSIST_MESSAGES = False
        context = build_context(test_settings, provider_factory, session_maker=session_maker)

        assert context.message_log is None


# =============================================================================
# LOGIN TO SEND, OVER THE ROUTES
# =============================================================================


def _open_request() -> MagicMock:
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=False)
    return request


class TestLoginScenarios:
    """Event stream and send route against one registry."""

    @pytest.mark.asyncio
    async def test_alice_scans_then_sends(self, context, provider_factory, read_frames):
        provider_factory.script = [events.Qr(code="2@alice-login"), events.Ready()]

        response = await events_api.account_events("alice", _open_request(), context)
        frames = await read_frames(response.body_iterator, 3)

        assert response.media_type == "text/event-stream"
        assert [event_type for event_type, _ in frames] == ["connected", "qr", "ready"]
        assert frames[0][1] == {"message": "Connected to SSE", "accountId": "alice"}
        assert frames[1][1]["qr"].startswith("data:image/png;base64,")

        result = await messages_api.send_message(
            SendMessageRequest(phone="15551234567", message="Hi", account_id="alice"),
            context,
        )

        assert result.success is True
        assert result.message == "Message sent to 15551234567"
        assert provider_factory.latest("alice").sent[0][:2] == ("15551234567@c.us", "Hi")

        await response.body_iterator.aclose()
        assert context.broadcaster.subscriber_count("alice") == 0

    @pytest.mark.asyncio
    async def test_late_listener_gets_ready(self, context, provider_factory, read_frames, settle):
        provider_factory.script = [events.Ready()]
        context.registry.get_or_create("alice")
        await settle()

        response = await events_api.account_events("alice", _open_request(), context)
        frames = await read_frames(response.body_iterator, 2)

        assert frames == [
            ("connected", {"message": "Connected to SSE", "accountId": "alice"}),
            ("ready", {"message": "Connected and ready"}),
        ]
        assert len(provider_factory.for_account("alice")) == 1
        await response.body_iterator.aclose()

    @pytest.mark.asyncio
    async def test_bob_never_scans(self, context, provider_factory, read_frames):
        provider_factory.script = [events.Qr(code="2@bob-login")]

        response = await events_api.account_events("bob", _open_request(), context)
        frames = await read_frames(response.body_iterator, 2)
        assert [event_type for event_type, _ in frames] == ["connected", "qr"]

        with pytest.raises(NotReady, match="not ready"):
            await messages_api.send_message(
                SendMessageRequest(phone="15551234567", message="Hi", account_id="bob"),
                context,
            )

        assert provider_factory.latest("bob").sent == []
        await response.body_iterator.aclose()

    @pytest.mark.asyncio
    async def test_disconnected_listener_stops_stream(self, context, read_frames):
        request = _open_request()
        response = await events_api.account_events("alice", request, context)
        await read_frames(response.body_iterator, 1)

        request.is_disconnected.return_value = True
        await context.broadcaster.publish("alice", "loading", {"percent": 50})

        with pytest.raises(StopAsyncIteration):
            await response.body_iterator.__anext__()
        assert context.broadcaster.subscriber_count("alice") == 0
