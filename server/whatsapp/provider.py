"""
Messaging Provider Interface - server/whatsapp/provider.py

The provider client is the black box that drives one WhatsApp Web account
(browser automation, session persistence, QR handshake). The session
registry only talks to it through this interface.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

from server.whatsapp.events import ProviderEvent

EventListener = Callable[[ProviderEvent], Awaitable[None]]


@dataclass(frozen=True)
class MediaPayload:
    """Base64 encoded attachment handed to the provider."""

    mimetype: str
    data: str
    filename: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"mimetype": self.mimetype, "data": self.data, "filename": self.filename}


MessageContent = Union[str, MediaPayload]


class ProviderClient(Protocol):
    """One automation client bound to one account."""

    account_id: str

    async def initialize(self) -> None:
        """Start the client. Progress is reported through emitted events."""

    async def destroy(self) -> None:
        """Release the automation resources of this client."""

    async def send_message(
        self,
        chat_id: str,
        content: MessageContent,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Send a message; returns the provider's message id when known."""

    async def get_number_id(self, number: str) -> Optional[str]:
        """Resolve a digits-only number to a chat id, None if not on WhatsApp."""

    async def emit(self, event: ProviderEvent) -> None:
        """Deliver a lifecycle event to the registered listener."""


# Builds a client for an account, its credential directory and the event listener
ProviderFactory = Callable[[str, Path, EventListener], ProviderClient]


class BaseProviderClient:
    """Holds the account binding and listener shared by provider implementations."""

    def __init__(self, account_id: str, session_dir: Path, listener: EventListener):
        self.account_id = account_id
        self.session_dir = session_dir
        self._listener = listener

    async def emit(self, event: ProviderEvent) -> None:
        await self._listener(event)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(account_id={self.account_id!r})"
