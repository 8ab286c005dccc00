"""
Provider Lifecycle Events - server/whatsapp/events.py

Fixed set of events a provider client can emit for one account.
Each variant is tagged by its `type`, which is also the SSE event name.

Flow: provider webhook dict → parse_provider_event() → ProviderEvent → SessionRegistry
"""

from __future__ import annotations

from typing import Any, Dict, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# =============================================================================
# EVENT VARIANTS
# =============================================================================


class BaseProviderEvent(BaseModel):
    """Common config for provider events."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Qr(BaseProviderEvent):
    """Login code the end user scans from the phone."""

    type: Literal["qr"] = "qr"
    code: str = Field(..., min_length=1, validation_alias=AliasChoices("code", "qr"))


class Authenticated(BaseProviderEvent):
    type: Literal["authenticated"] = "authenticated"


class Ready(BaseProviderEvent):
    type: Literal["ready"] = "ready"


class AuthFailure(BaseProviderEvent):
    type: Literal["auth_failure"] = "auth_failure"
    message: str = Field("", validation_alias=AliasChoices("message", "msg"))


class Disconnected(BaseProviderEvent):
    type: Literal["disconnected"] = "disconnected"
    reason: str = ""


class Loading(BaseProviderEvent):
    """Cold-start progress of the automation browser."""

    type: Literal["loading"] = "loading"
    percent: int = Field(0, ge=0, le=100)
    message: str = ""


class Error(BaseProviderEvent):
    type: Literal["error"] = "error"
    message: str = ""


class Message(BaseProviderEvent):
    """Inbound message notification (informational only)."""

    type: Literal["message"] = "message"
    sender: str = Field("", validation_alias=AliasChoices("from", "sender"))
    body: str = ""


# =============================================================================
# UNION TYPE FOR PARSING
# =============================================================================

ProviderEvent = Union[
    Qr,
    Authenticated,
    Ready,
    AuthFailure,
    Disconnected,
    Loading,
    Error,
    Message,
]

EVENT_TYPES: Dict[str, type] = {
    "qr": Qr,
    "authenticated": Authenticated,
    "ready": Ready,
    "auth_failure": AuthFailure,
    "disconnected": Disconnected,
    "loading": Loading,
    "error": Error,
    "message": Message,
}


def parse_provider_event(data: Dict[str, Any]) -> ProviderEvent:
    """
    Parse a dict into the matching provider event.

    Raises ValueError if the type is unknown or the fields are invalid.
    """
    event_type: Optional[str] = data.get("type")

    model_class = EVENT_TYPES.get(event_type)
    if not model_class:
        raise ValueError(f"Unknown provider event: {event_type}")

    return model_class.model_validate(data)
