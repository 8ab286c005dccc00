"""
Test configuration and shared fixtures.

This module provides common test fixtures for the session service test suite.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Generator, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio

from server.core.config import Settings
from server.core.db import create_db_engine_and_session_factory, create_tables
from server.sessions.broadcaster import EventBroadcaster, Subscription
from server.sessions.context import SessionContext, build_context
from server.sessions.registry import SessionRegistry
from server.whatsapp.events import ProviderEvent
from server.whatsapp.provider import BaseProviderClient, EventListener, MessageContent

# =============================================================================
# FAKE PROVIDER
# =============================================================================


class FakeProviderClient(BaseProviderClient):
    """Scriptable provider client: records calls, emits `script` on initialize."""

    def __init__(
        self,
        account_id: str,
        session_dir: Path,
        listener: EventListener,
        script: Optional[List[ProviderEvent]] = None,
    ):
        super().__init__(account_id, session_dir, listener)
        self.script = list(script or [])
        self.initialized = 0
        self.destroyed = 0
        self.sent: List[Tuple[str, MessageContent, Optional[dict]]] = []
        self.numbers: Dict[str, str] = {}
        self.init_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.destroy_error: Optional[Exception] = None

    async def initialize(self) -> None:
        self.initialized += 1
        if self.init_error:
            raise self.init_error
        for event in self.script:
            await self.emit(event)

    async def destroy(self) -> None:
        self.destroyed += 1
        if self.destroy_error:
            raise self.destroy_error

    async def send_message(self, chat_id, content, options=None) -> Optional[str]:
        if self.send_error:
            raise self.send_error
        self.sent.append((chat_id, content, options))
        return f"msg-{len(self.sent)}"

    async def get_number_id(self, number: str) -> Optional[str]:
        return self.numbers.get(number)


class FakeProviderFactory:
    """ProviderFactory that keeps every client it built."""

    def __init__(self, script: Optional[List[ProviderEvent]] = None):
        self.script = script
        self.clients: List[FakeProviderClient] = []

    def __call__(
        self, account_id: str, session_dir: Path, listener: EventListener
    ) -> FakeProviderClient:
        client = FakeProviderClient(account_id, session_dir, listener, self.script)
        self.clients.append(client)
        return client

    def for_account(self, account_id: str) -> List[FakeProviderClient]:
        return [c for c in self.clients if c.account_id == account_id]

    def latest(self, account_id: str) -> FakeProviderClient:
        return self.for_account(account_id)[-1]


# =============================================================================
# FIXTURES: Settings & Context
# =============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated to a temp directory, no database / redis / sentry."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=None,
        REDIS_URL=None,
        SENTRY_DSN=None,
        SESSIONS_DIR=str(tmp_path / "sessions"),
        UPLOAD_DIR=str(tmp_path / "uploads"),
        PROVIDER_WEBHOOK_SECRET="test-webhook-secret",
        RECONNECT_STRATEGY="none",
        SSE_KEEPALIVE_SECONDS=5.0,
    )


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """On-disk SQLite database for persistence tests."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def provider_factory() -> FakeProviderFactory:
    return FakeProviderFactory()


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster()


@pytest.fixture
def registry(
    provider_factory: FakeProviderFactory,
    broadcaster: EventBroadcaster,
    test_settings: Settings,
) -> SessionRegistry:
    return SessionRegistry(
        provider_factory, broadcaster, Path(test_settings.SESSIONS_DIR)
    )


@pytest.fixture
def context(
    test_settings: Settings, provider_factory: FakeProviderFactory
) -> SessionContext:
    """Context with the filesystem account directory and no message log."""
    Path(test_settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    return build_context(test_settings, provider_factory)


# =============================================================================
# FIXTURES: Database Session
# =============================================================================


@pytest_asyncio.fixture
async def session_maker(database_url: str) -> AsyncGenerator[Any, None]:
    """async_sessionmaker bound to a fresh SQLite database."""
    engine, factory = create_db_engine_and_session_factory(database_url)
    await create_tables(engine)
    yield factory
    await engine.dispose()


# =============================================================================
# FIXTURES: Mock Clients
# =============================================================================


@pytest.fixture
def mock_httpx_client() -> Generator[AsyncMock, None, None]:
    """Mock httpx async client for HTTP requests."""
    with patch("httpx.AsyncClient") as mock:
        client = AsyncMock()
        mock.return_value.__aenter__.return_value = client
        yield client


def make_response(status_code: int, data: Any = None, content: bytes = b"{}") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data if data is not None else {}
    response.content = content
    response.headers = {}
    return response


@pytest.fixture
def http_response():
    """Factory for mocked httpx responses."""
    return make_response


# =============================================================================
# FIXTURES: Event Loop Helpers
# =============================================================================


@pytest.fixture
def settle():
    """Let background tasks (client initialization, reconnects) run."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


def parse_frame(frame: str) -> Tuple[str, Any]:
    """('event type', data) of one SSE frame."""
    event_type, data = None, None
    for line in frame.strip().splitlines():
        if line.startswith("event: "):
            event_type = line[len("event: "):]
        elif line.startswith("data: "):
            data = json.loads(line[len("data: "):])
    return event_type, data


@pytest.fixture
def read_frames():
    """Read `count` frames from a Subscription or an SSE body iterator."""

    async def _read(source, count: int, timeout: float = 1.0) -> List[Tuple[str, Any]]:
        stream = source.stream() if isinstance(source, Subscription) else source
        frames = []
        for _ in range(count):
            frame = await asyncio.wait_for(stream.__anext__(), timeout=timeout)
            frames.append(parse_frame(frame))
        return frames

    return _read
