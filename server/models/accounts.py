from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from server.models.base import AccountStatus, Base, TimestampMixin, utc_now


class Account(TimestampMixin, Base):
    """Known WhatsApp accounts and their last-known provider status."""
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=AccountStatus.INITIALIZED.value, nullable=False
    )
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_account_status", "status"),
        Index("idx_account_created", "created_at"),
    )
