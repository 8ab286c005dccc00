"""
Session Registry - server/sessions/registry.py

Owns the one-to-one mapping of account id → provider client, wires each
client's lifecycle events to the event broadcaster and the account
directory, and handles teardown and automatic reconnects.

All map mutations are plain synchronous code, so they never interleave
with other coroutines on the event loop.
"""

from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set

from server.core.errors import InvalidArgument, NotFound, NotReady, PersistenceFailure
from server.core.monitoring import log_event, log_exception
from server.models.base import AccountStatus, utc_now
from server.services.accounts import AccountDirectory
from server.sessions.broadcaster import EventBroadcaster
from server.sessions.reconnect import NoReconnect, ReconnectPolicy
from server.whatsapp import events
from server.whatsapp.provider import ProviderClient, ProviderFactory
from server.whatsapp.qr import render_qr_data_url

# Characters that would let an id escape the sessions directory
_FORBIDDEN_ID_CHARS = re.compile(r"[\s/\\]")

# Events that create the account record when it is missing
_UPSERT_STATUSES = {
    AccountStatus.INITIALIZED,
    AccountStatus.AUTHENTICATED,
    AccountStatus.READY,
}


def validate_account_id(account_id: Optional[str]) -> str:
    """Return the id if usable, otherwise raise InvalidArgument."""
    if not isinstance(account_id, str) or not account_id:
        raise InvalidArgument("Account ID required")
    if _FORBIDDEN_ID_CHARS.search(account_id) or account_id in (".", ".."):
        raise InvalidArgument("Account ID must not contain spaces or slashes")
    return account_id


def credential_dir(sessions_root: Path, account_id: str) -> Path:
    """Per-account directory holding the provider's persisted login."""
    return sessions_root / f"session-{account_id}"


def _remove_tree(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


@dataclass
class Session:
    """Live pairing of an account with its provider client."""

    account_id: str
    client: ProviderClient
    ready: bool = False
    status: AccountStatus = AccountStatus.INITIALIZED
    created_at: datetime = field(default_factory=utc_now)
    init_task: Optional[asyncio.Task] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "ready": self.ready,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }


class SessionRegistry:
    """At most one provider client per account id."""

    def __init__(
        self,
        provider_factory: ProviderFactory,
        broadcaster: EventBroadcaster,
        sessions_root: Path,
        directory: Optional[AccountDirectory] = None,
        reconnect_policy: Optional[ReconnectPolicy] = None,
    ):
        self._provider_factory = provider_factory
        self._broadcaster = broadcaster
        self._sessions_root = Path(sessions_root)
        self._directory = directory
        self._reconnect_policy = reconnect_policy or NoReconnect()
        self._sessions: Dict[str, Session] = {}
        self._reconnect_tasks: Dict[str, asyncio.Task] = {}
        self._reconnect_attempts: Dict[str, int] = {}
        self._background: Set[asyncio.Task] = set()

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def __contains__(self, account_id: str) -> bool:
        return account_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, account_id: str) -> Session:
        session = self._sessions.get(account_id)
        if session is None:
            raise NotFound(f"No active session for {account_id}")
        return session

    def require_ready(self, account_id: str) -> Session:
        """Session that can send right now, otherwise NotReady."""
        session = self._sessions.get(account_id)
        if session is None or not session.ready:
            raise NotReady(
                f"Client for {account_id} is not ready. Please scan the QR code first."
            )
        return session

    def sessions(self) -> List[Session]:
        return list(self._sessions.values())

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def get_or_create(self, account_id: str) -> Session:
        """
        Return the account's session, creating and starting one if needed.

        Creation builds the provider client, stores a not-ready session and
        schedules initialization in the background. Initialization failures
        are reported as `error` events, never raised here.
        """
        account_id = validate_account_id(account_id)

        existing = self._sessions.get(account_id)
        if existing is not None:
            return existing

        # A manual (re)activation supersedes any pending reconnect
        self._cancel_reconnect(account_id)

        holder: Dict[str, Session] = {}

        async def listener(event: events.ProviderEvent) -> None:
            await self._handle_event(holder["session"], event)

        client = self._provider_factory(
            account_id, credential_dir(self._sessions_root, account_id), listener
        )
        session = Session(account_id=account_id, client=client)
        holder["session"] = session
        self._sessions[account_id] = session

        session.init_task = self._spawn(self._initialize(session))
        log_event("session_created", account_id=account_id)
        return session

    def mark_ready(self, account_id: str) -> None:
        session = self._sessions.get(account_id)
        if session is not None:
            session.ready = True

    def mark_not_ready(self, account_id: str) -> None:
        session = self._sessions.get(account_id)
        if session is not None:
            session.ready = False

    async def remove(self, account_id: str) -> bool:
        """
        Tear down the account's session and delete its credential directory.

        Returns False when no session was active; a pending reconnect is
        still cancelled so the account stays logged out.
        The registry entry is dropped even if the provider fails to shut down.
        """
        self._cancel_reconnect(account_id)
        self._reconnect_attempts.pop(account_id, None)

        session = self._sessions.pop(account_id, None)
        if session is None:
            return False

        self._cancel_init(session)

        await self._destroy_client(session)
        await self._delete_credentials(account_id)

        log_event("session_removed", account_id=account_id)
        return True

    async def restart(self, account_id: str) -> Session:
        """Replace the account's client with a fresh one, keeping its credentials."""
        session = self.get(account_id)
        self._drop(session)
        self._cancel_init(session)
        await self._destroy_client(session)

        log_event("session_restarting", account_id=account_id)
        return self.get_or_create(account_id)

    async def shutdown(self) -> None:
        """Stop every client and background task (application shutdown)."""
        for account_id in list(self._reconnect_tasks):
            self._cancel_reconnect(account_id)

        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            self._cancel_init(session)
            await self._destroy_client(session)

        for task in list(self._background):
            task.cancel()

        log_event("session_registry_shutdown", sessions=len(sessions))

    # =========================================================================
    # EVENT WIRING
    # =========================================================================

    async def _handle_event(
        self, session: Session, event: events.ProviderEvent
    ) -> None:
        """Relay one provider event: session state, broadcast, directory."""
        account_id = session.account_id
        if self._sessions.get(account_id) is not session:
            log_event(
                "stale_provider_event_ignored",
                level="debug",
                account_id=account_id,
                event_type=event.type,
            )
            return

        status: Optional[AccountStatus] = None
        drop_session = False

        if isinstance(event, events.Qr):
            status = AccountStatus.INITIALIZED
            payload = {"qr": self._render_qr(account_id, event.code), "code": event.code}
        elif isinstance(event, events.Authenticated):
            status = AccountStatus.AUTHENTICATED
            payload = {"message": "Authenticated, please wait..."}
        elif isinstance(event, events.Ready):
            status = AccountStatus.READY
            self.mark_ready(account_id)
            self._reconnect_attempts.pop(account_id, None)
            payload = {"message": "Connected and ready"}
        elif isinstance(event, events.AuthFailure):
            status = AccountStatus.AUTH_FAILURE
            self.mark_not_ready(account_id)
            payload = {"message": event.message}
        elif isinstance(event, events.Disconnected):
            status = AccountStatus.DISCONNECTED
            self.mark_not_ready(account_id)
            drop_session = True
            payload = {"reason": event.reason}
        elif isinstance(event, events.Loading):
            payload = {"percent": event.percent, "message": event.message}
        elif isinstance(event, events.Error):
            payload = {"message": event.message}
        elif isinstance(event, events.Message):
            payload = {"from": event.sender, "body": event.body}
        else:
            raise TypeError(f"Unhandled provider event: {event!r}")

        if status is not None:
            session.status = status

        log_event(
            "provider_event",
            level="debug" if event.type in ("loading", "message") else "info",
            account_id=account_id,
            event_type=event.type,
        )

        await self._broadcaster.publish(account_id, event.type, payload)

        if drop_session:
            self._drop(session)
            self._spawn(self._destroy_client(session))
            self._schedule_reconnect(account_id)

        if status is not None:
            await self._record_status(account_id, status)

    def _render_qr(self, account_id: str, code: str) -> Optional[str]:
        try:
            return render_qr_data_url(code)
        except Exception as e:
            log_exception("qr_render_failed", e, account_id=account_id)
            return None

    async def _record_status(self, account_id: str, status: AccountStatus) -> None:
        if self._directory is None:
            return
        try:
            await self._directory.update_status(
                account_id, status, upsert=status in _UPSERT_STATUSES
            )
        except PersistenceFailure as e:
            log_exception(
                "account_status_update_failed", e,
                account_id=account_id, status=status.value,
            )

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _drop(self, session: Session) -> None:
        """Forget the session if it is still the current one for its account."""
        if self._sessions.get(session.account_id) is session:
            del self._sessions[session.account_id]

    def _cancel_init(self, session: Session) -> None:
        task = session.init_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _initialize(self, session: Session) -> None:
        account_id = session.account_id
        try:
            await session.client.initialize()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log_exception("provider_initialize_failed", e, account_id=account_id)
            await self._handle_event(session, events.Error(message=str(e)))
            # Let the next activation start over with a fresh client
            self._drop(session)
            await self._destroy_client(session)
            return

        log_event("provider_initialize_started", level="debug", account_id=account_id)

    async def _destroy_client(self, session: Session) -> None:
        try:
            await session.client.destroy()
        except Exception as e:
            log_exception(
                "provider_destroy_failed", e, account_id=session.account_id
            )

    async def _delete_credentials(self, account_id: str) -> None:
        path = credential_dir(self._sessions_root, account_id)
        try:
            await asyncio.to_thread(_remove_tree, path)
        except OSError as e:
            log_exception("credential_delete_failed", e, account_id=account_id)

    def _schedule_reconnect(self, account_id: str) -> None:
        attempt = self._reconnect_attempts.get(account_id, 0) + 1
        delay = self._reconnect_policy.next_delay(attempt)
        if delay is None:
            if attempt > 1:
                log_event(
                    "reconnect_gave_up",
                    level="warning",
                    account_id=account_id,
                    attempts=attempt - 1,
                )
            self._reconnect_attempts.pop(account_id, None)
            return

        self._reconnect_attempts[account_id] = attempt
        self._cancel_reconnect(account_id)
        self._reconnect_tasks[account_id] = self._spawn(
            self._reconnect_after(account_id, delay)
        )
        log_event(
            "reconnect_scheduled",
            account_id=account_id,
            attempt=attempt,
            delay=delay,
        )

    async def _reconnect_after(self, account_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_tasks.pop(account_id, None)
        if account_id not in self._sessions:
            self.get_or_create(account_id)

    def _cancel_reconnect(self, account_id: str) -> None:
        task = self._reconnect_tasks.pop(account_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
