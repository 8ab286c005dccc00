"""
Account & Session Management API endpoints.
"""

from typing import Optional

from fastapi import APIRouter

from server.core.errors import NotReady, PersistenceFailure
from server.core.monitoring import log_event
from server.dependencies import ContextDep
from server.models.base import AccountStatus
from server.schemas.accounts import (
    AccountActionResponse,
    AccountListResponse,
    AccountRequest,
    AccountResponse,
    AccountStatusResponse,
)
from server.services.accounts import AccountRecord
from server.sessions.context import SessionContext
from server.sessions.registry import validate_account_id

router = APIRouter(prefix="/accounts", tags=["Accounts"])


# ============================================================================
# HELPERS
# ============================================================================


def _account_response(
    context: SessionContext, record: AccountRecord
) -> AccountResponse:
    """Stored record overlaid with the live session state."""
    registry = context.registry
    active = record.account_id in registry
    session = registry.get(record.account_id) if active else None
    return AccountResponse(
        account_id=record.account_id,
        status=session.status.value if session else record.status,
        active=active,
        ready=bool(session and session.ready),
        last_activity=record.last_activity,
        created_at=record.created_at,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================


@router.get("", response_model=AccountListResponse)
async def list_accounts(context: ContextDep):
    """
    List known accounts, newest first.

    Accounts with a live session but no stored record are appended.
    """
    records = await context.directory.list_accounts()
    accounts = [_account_response(context, r) for r in records]

    known = {r.account_id for r in records}
    for session in context.registry.sessions():
        if session.account_id not in known:
            accounts.append(
                AccountResponse(
                    account_id=session.account_id,
                    status=session.status.value,
                    active=True,
                    ready=session.ready,
                    created_at=session.created_at,
                )
            )

    return AccountListResponse(accounts=accounts)


@router.post("", response_model=AccountActionResponse)
async def create_account(data: AccountRequest, context: ContextDep):
    """
    Register a new account and start its provider client.

    Fails with 400 when the id is missing, malformed, or already registered.
    """
    account_id = validate_account_id(data.account_id)

    record = await context.directory.create(account_id)
    context.registry.get_or_create(account_id)

    log_event("account_registered", account_id=account_id)

    return AccountActionResponse(
        message=f"Account {account_id} created",
        account_id=account_id,
        account=_account_response(context, record),
    )


@router.post("/activate", response_model=AccountActionResponse)
async def activate_account(data: AccountRequest, context: ContextDep):
    """Start the account's provider client unless one is already running."""
    account_id = validate_account_id(data.account_id)

    already_active = account_id in context.registry
    context.registry.get_or_create(account_id)

    return AccountActionResponse(
        message=(
            f"Account {account_id} already active"
            if already_active
            else f"Account {account_id} activated"
        ),
        account_id=account_id,
    )


@router.post("/logout", response_model=AccountActionResponse)
async def logout_account(data: AccountRequest, context: ContextDep):
    """
    Destroy the account's client and delete its stored credentials.

    Succeeds whether or not a session was active.
    """
    account_id = validate_account_id(data.account_id)

    was_active = await context.registry.remove(account_id)
    if was_active:
        await context.broadcaster.publish(
            account_id,
            AccountStatus.DISCONNECTED.value,
            {"reason": "logout"},
        )

    record: Optional[AccountRecord] = None
    try:
        record = await context.directory.update_status(
            account_id, AccountStatus.DISCONNECTED
        )
    except PersistenceFailure:
        log_event("logout_status_not_recorded", level="warning", account_id=account_id)

    log_event("account_logged_out", account_id=account_id, was_active=was_active)

    return AccountActionResponse(
        message=(
            f"Account {account_id} logged out"
            if was_active
            else f"No active session for {account_id}"
        ),
        account_id=account_id,
        account=_account_response(context, record) if record else None,
    )


@router.post("/{account_id}/refresh", response_model=AccountActionResponse)
async def refresh_account(account_id: str, context: ContextDep):
    """Restart the account's client so a fresh QR code is issued."""
    account_id = validate_account_id(account_id)

    if account_id not in context.registry:
        raise NotReady(f"Client for {account_id} not initialized")

    await context.registry.restart(account_id)

    return AccountActionResponse(
        message="QR refresh initiated",
        account_id=account_id,
    )


@router.get("/{account_id}/status", response_model=AccountStatusResponse)
async def get_account_status(account_id: str, context: ContextDep):
    """Live session snapshot plus the stored account record."""
    account_id = validate_account_id(account_id)

    session = (
        context.registry.get(account_id) if account_id in context.registry else None
    )
    record = await context.directory.get(account_id)

    status = None
    if session is not None:
        status = session.status.value
    elif record is not None:
        status = record.status

    return AccountStatusResponse(
        account_id=account_id,
        active=session is not None,
        ready=bool(session and session.ready),
        status=status,
        subscribers=context.broadcaster.subscriber_count(account_id),
        session=session.to_dict() if session else None,
        account=_account_response(context, record) if record else None,
    )
