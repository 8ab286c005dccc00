from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Current UTC time as naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================


class AccountStatus(str, enum.Enum):
    INITIALIZED = "initialized"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    DISCONNECTED = "disconnected"
    AUTH_FAILURE = "auth_failure"


class MessageStatus(str, enum.Enum):
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"


# ============================================================================
# BASE & MIXINS
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all models."""

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for col in self.__table__.columns:
            val = getattr(self, col.name)
            if isinstance(val, (datetime, uuid.UUID)):
                val = str(val)
            if isinstance(val, enum.Enum):
                val = val.value
            result[col.name] = val
        return result


class TimestampMixin:
    """Standard created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )
