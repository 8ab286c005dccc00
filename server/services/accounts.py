"""
Account Directory - server/services/accounts.py

Durable record of known accounts and their last-known provider status.
Backed by the database when one is configured, otherwise by the listing of
per-account credential directories under SESSIONS_DIR.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from server.core.errors import InvalidArgument, PersistenceFailure
from server.core.monitoring import log_event, log_exception
from server.models.accounts import Account
from server.models.base import AccountStatus, utc_now

CREDENTIAL_DIR_PREFIX = "session-"


@dataclass
class AccountRecord:
    account_id: str
    status: str
    last_activity: datetime
    created_at: datetime

    @classmethod
    def from_model(cls, account: Account) -> "AccountRecord":
        return cls(
            account_id=account.account_id,
            status=account.status,
            last_activity=account.last_activity,
            created_at=account.created_at,
        )


class AccountDirectory(Protocol):
    async def list_accounts(self) -> List[AccountRecord]:
        """All known accounts, newest first."""

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        """The account's record, or None."""

    async def create(self, account_id: str) -> AccountRecord:
        """Register a new account. Raises InvalidArgument if it already exists."""

    async def update_status(
        self, account_id: str, status: AccountStatus, upsert: bool = False
    ) -> Optional[AccountRecord]:
        """Set status and last activity; creates the record only with `upsert`."""


# ============================================================================
# DATABASE
# ============================================================================


class SqlAccountDirectory:
    """Accounts table via SQLAlchemy async sessions."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def list_accounts(self) -> List[AccountRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(Account).order_by(Account.created_at.desc())
                )
                return [AccountRecord.from_model(a) for a in result.scalars().all()]
        except SQLAlchemyError as e:
            log_exception("account_list_failed", e)
            raise PersistenceFailure("Failed to load accounts") from e

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        try:
            async with self._session_maker() as session:
                account = await self._find(session, account_id)
                return AccountRecord.from_model(account) if account else None
        except SQLAlchemyError as e:
            log_exception("account_get_failed", e, account_id=account_id)
            raise PersistenceFailure("Failed to load account") from e

    async def create(self, account_id: str) -> AccountRecord:
        try:
            async with self._session_maker() as session:
                if await self._find(session, account_id):
                    raise InvalidArgument("Account already exists")

                account = Account(account_id=account_id)
                session.add(account)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise InvalidArgument("Account already exists") from e
                await session.refresh(account)
        except SQLAlchemyError as e:
            log_exception("account_create_failed", e, account_id=account_id)
            raise PersistenceFailure("Failed to create account") from e

        log_event("account_created", account_id=account_id)
        return AccountRecord.from_model(account)

    async def update_status(
        self, account_id: str, status: AccountStatus, upsert: bool = False
    ) -> Optional[AccountRecord]:
        try:
            async with self._session_maker() as session:
                account = await self._find(session, account_id)
                if account is None:
                    if not upsert:
                        return None
                    account = Account(account_id=account_id)
                    session.add(account)

                account.status = status.value
                account.last_activity = utc_now()
                await session.commit()
                await session.refresh(account)
                return AccountRecord.from_model(account)
        except SQLAlchemyError as e:
            log_exception(
                "account_status_write_failed", e,
                account_id=account_id, status=status.value,
            )
            raise PersistenceFailure("Failed to update account status") from e

    @staticmethod
    async def _find(session, account_id: str) -> Optional[Account]:
        result = await session.execute(
            select(Account).where(Account.account_id == account_id)
        )
        return result.scalar_one_or_none()


# ============================================================================
# FILESYSTEM
# ============================================================================


class FilesystemAccountDirectory:
    """
    Accounts are the `session-<id>` directories under the sessions root.

    Status lives in memory only; after a restart every account found on
    disk starts out as `disconnected`.
    """

    def __init__(self, sessions_root: Path):
        self._root = Path(sessions_root)
        self._records: Dict[str, AccountRecord] = {}

    def _path(self, account_id: str) -> Path:
        return self._root / f"{CREDENTIAL_DIR_PREFIX}{account_id}"

    def _record_for(self, path: Path) -> AccountRecord:
        account_id = path.name[len(CREDENTIAL_DIR_PREFIX):]
        record = self._records.get(account_id)
        if record is None:
            created = datetime.fromtimestamp(
                path.stat().st_mtime, timezone.utc
            ).replace(tzinfo=None)
            record = AccountRecord(
                account_id=account_id,
                status=AccountStatus.DISCONNECTED.value,
                last_activity=created,
                created_at=created,
            )
            self._records[account_id] = record
        return record

    async def list_accounts(self) -> List[AccountRecord]:
        if self._root.is_dir():
            for path in self._root.iterdir():
                if path.is_dir() and path.name.startswith(CREDENTIAL_DIR_PREFIX):
                    self._record_for(path)
        return sorted(
            self._records.values(), key=lambda r: r.created_at, reverse=True
        )

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        path = self._path(account_id)
        if path.is_dir():
            return self._record_for(path)
        return self._records.get(account_id)

    async def create(self, account_id: str) -> AccountRecord:
        if await self.get(account_id) is not None:
            raise InvalidArgument("Account already exists")

        try:
            self._path(account_id).mkdir(parents=True, exist_ok=False)
        except FileExistsError as e:
            raise InvalidArgument("Account already exists") from e
        except OSError as e:
            log_exception("account_dir_create_failed", e, account_id=account_id)
            raise PersistenceFailure("Failed to create account") from e

        now = utc_now()
        record = AccountRecord(
            account_id=account_id,
            status=AccountStatus.INITIALIZED.value,
            last_activity=now,
            created_at=now,
        )
        self._records[account_id] = record
        log_event("account_created", account_id=account_id, store="filesystem")
        return record

    async def update_status(
        self, account_id: str, status: AccountStatus, upsert: bool = False
    ) -> Optional[AccountRecord]:
        record = await self.get(account_id)
        if record is None:
            if not upsert:
                return None
            now = utc_now()
            record = AccountRecord(
                account_id=account_id,
                status=status.value,
                last_activity=now,
                created_at=now,
            )
            self._records[account_id] = record

        record.status = status.value
        record.last_activity = utc_now()
        return record
