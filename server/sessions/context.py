"""
Session Context - server/sessions/context.py

Bundles the registry, broadcaster and their collaborators for one
application instance. Stored on app.state.sessions; nothing here is a
module-level global, so independent contexts can coexist (tests).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from server.core.config import Settings
from server.services.accounts import (
    AccountDirectory,
    FilesystemAccountDirectory,
    SqlAccountDirectory,
)
from server.services.message_log import MessageLog
from server.sessions.broadcaster import EventBroadcaster, EventSink
from server.sessions.reconnect import ReconnectPolicy, policy_from_settings
from server.sessions.registry import SessionRegistry
from server.whatsapp.provider import ProviderFactory


@dataclass
class SessionContext:
    settings: Settings
    broadcaster: EventBroadcaster
    registry: SessionRegistry
    directory: AccountDirectory
    message_log: Optional[MessageLog] = None

    @property
    def upload_dir(self) -> Path:
        return Path(self.settings.UPLOAD_DIR)

    async def close(self) -> None:
        await self.registry.shutdown()
        self.broadcaster.close_all()


def build_context(
    settings: Settings,
    provider_factory: ProviderFactory,
    *,
    session_maker: Optional[async_sessionmaker] = None,
    reconnect_policy: Optional[ReconnectPolicy] = None,
    sinks: Optional[List[EventSink]] = None,
) -> SessionContext:
    """Wire a context from settings; the database is optional."""
    sessions_root = Path(settings.SESSIONS_DIR)

    if session_maker is not None:
        directory: AccountDirectory = SqlAccountDirectory(session_maker)
    else:
        directory = FilesystemAccountDirectory(sessions_root)

    message_log = None
    if session_maker is not None and settings.PERSIST_MESSAGES:
        message_log = MessageLog(session_maker)

    broadcaster = EventBroadcaster(sinks=sinks, max_pending=settings.SSE_MAX_PENDING)
    registry = SessionRegistry(
        provider_factory,
        broadcaster,
        sessions_root,
        directory=directory,
        reconnect_policy=reconnect_policy or policy_from_settings(settings),
    )

    return SessionContext(
        settings=settings,
        broadcaster=broadcaster,
        registry=registry,
        directory=directory,
        message_log=message_log,
    )
