"""
Tests for Provider Events - tests/test_events.py

Tests the dict → ProviderEvent parsing used by the webhook.
"""

import pytest

from server.whatsapp.events import (
    AuthFailure,
    Authenticated,
    Disconnected,
    Error,
    Loading,
    Message,
    Qr,
    Ready,
    parse_provider_event,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"type": "qr", "qr": "2@abc"}, Qr(code="2@abc")),
        ({"type": "qr", "code": "2@abc"}, Qr(code="2@abc")),
        ({"type": "authenticated"}, Authenticated()),
        ({"type": "ready"}, Ready()),
        ({"type": "auth_failure", "msg": "bad"}, AuthFailure(message="bad")),
        ({"type": "disconnected", "reason": "LOGOUT"}, Disconnected(reason="LOGOUT")),
        ({"type": "error", "message": "boom"}, Error(message="boom")),
    ],
)
def test_parse_lifecycle_events(data, expected):
    assert parse_provider_event(data) == expected


def test_parse_loading():
    event = parse_provider_event({"type": "loading", "percent": 75, "message": "WhatsApp"})

    assert isinstance(event, Loading)
    assert event.percent == 75
    assert event.message == "WhatsApp"


def test_parse_message_uses_from_field():
    event = parse_provider_event(
        {"type": "message", "from": "15551234567@c.us", "body": "hello", "id": "ignored"}
    )

    assert isinstance(event, Message)
    assert event.sender == "15551234567@c.us"
    assert event.body == "hello"


def test_unknown_event_type():
    with pytest.raises(ValueError, match="Unknown provider event"):
        parse_provider_event({"type": "change_state"})


def test_missing_type():
    with pytest.raises(ValueError, match="Unknown provider event"):
        parse_provider_event({"qr": "2@abc"})


def test_qr_requires_code():
    with pytest.raises(ValueError):
        parse_provider_event({"type": "qr", "qr": ""})


def test_loading_percent_bounds():
    with pytest.raises(ValueError):
        parse_provider_event({"type": "loading", "percent": 140})


def test_events_are_immutable():
    event = Ready()
    with pytest.raises(ValueError):
        event.type = "qr"
