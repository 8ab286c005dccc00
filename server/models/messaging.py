from __future__ import annotations
import uuid
from typing import Optional

from sqlalchemy import String, Text, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from server.models.base import Base, TimestampMixin, MessageStatus


class Template(TimestampMixin, Base):
    """Reusable message bodies picked from the UI."""
    __tablename__ = "templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("idx_template_created", "created_at"),
    )


class Message(TimestampMixin, Base):
    """Outbound delivery attempts - written before the send, updated after."""
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    chat_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=MessageStatus.SENDING.value, nullable=False
    )
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    provider_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("idx_msg_account_time", "account_id", "created_at"),
        Index("idx_msg_status", "status"),
    )
