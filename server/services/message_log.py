"""
Message Log - server/services/message_log.py

Records outbound delivery attempts: written as `sending` before the
provider call and updated to `delivered` or `failed` afterwards. Record
keeping is not atomic with delivery; a failed write never undoes a send.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from server.core.errors import PersistenceFailure
from server.core.monitoring import log_exception
from server.models.base import MessageStatus
from server.models.messaging import Message


class MessageLog:
    """Delivery-attempt records in the messages table."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def record_attempt(
        self,
        *,
        account_id: str,
        phone: str,
        chat_id: str,
        content: Optional[str],
        media_url: Optional[str] = None,
        media_caption: Optional[str] = None,
    ) -> uuid.UUID:
        try:
            async with self._session_maker() as session:
                message = Message(
                    account_id=account_id,
                    phone=phone,
                    chat_id=chat_id,
                    content=content,
                    media_url=media_url,
                    media_caption=media_caption,
                    status=MessageStatus.SENDING.value,
                )
                session.add(message)
                await session.commit()
                return message.id
        except SQLAlchemyError as e:
            log_exception("message_record_failed", e, account_id=account_id)
            raise PersistenceFailure("Failed to record message") from e

    async def mark(
        self,
        message_id: uuid.UUID,
        status: MessageStatus,
        *,
        error: Optional[str] = None,
        provider_message_id: Optional[str] = None,
    ) -> None:
        try:
            async with self._session_maker() as session:
                message = await session.get(Message, message_id)
                if message is None:
                    return
                message.status = status.value
                message.error = error
                if provider_message_id:
                    message.provider_message_id = provider_message_id
                await session.commit()
        except SQLAlchemyError as e:
            log_exception(
                "message_status_write_failed", e,
                message_id=str(message_id), status=status.value,
            )
            raise PersistenceFailure("Failed to update message status") from e

    async def list_messages(
        self,
        account_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[List[Message], int]:
        try:
            async with self._session_maker() as session:
                query = select(Message)
                count_query = select(func.count()).select_from(Message)
                if account_id:
                    query = query.where(Message.account_id == account_id)
                    count_query = count_query.where(Message.account_id == account_id)

                total = (await session.execute(count_query)).scalar_one()
                result = await session.execute(
                    query.order_by(Message.created_at.desc()).limit(limit).offset(offset)
                )
                return list(result.scalars().all()), total
        except SQLAlchemyError as e:
            log_exception("message_list_failed", e, account_id=account_id)
            raise PersistenceFailure("Failed to load messages") from e
