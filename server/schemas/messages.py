from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from server.schemas.accounts import ApiModel

# ============================================================================
# REQUESTS
# ============================================================================


class MediaAttachment(ApiModel):
    """Attachment by URL: http(s) or a path returned by /api/upload-media"""

    url: str = Field(..., min_length=1, description="Media URL")
    caption: Optional[str] = Field(
        None, max_length=3000, description="Caption, defaults to the message text"
    )


class SendMessageRequest(ApiModel):
    """Schema for sending a text or media message"""

    phone: Optional[str] = Field(None, description="Recipient phone number")
    message: Optional[str] = Field(None, description="Message text")
    media: Optional[MediaAttachment] = None
    account_id: Optional[str] = Field(
        None, description="Sending account, defaults to DEFAULT_ACCOUNT_ID"
    )


# ============================================================================
# RESPONSES
# ============================================================================


class SendMessageResponse(ApiModel):
    """Schema for send result"""

    success: bool = True
    message: str = "Message sent successfully"
    account_id: str
    phone: str
    chat_id: str
    message_id: Optional[str] = None
    record_id: Optional[UUID] = None


class MessageResponse(ApiModel):
    """Schema for a delivery record"""

    id: UUID
    account_id: str
    phone: str
    chat_id: str
    content: Optional[str] = None
    media_url: Optional[str] = None
    media_caption: Optional[str] = None
    status: str
    error: Optional[str] = None
    provider_message_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MessageListResponse(ApiModel):
    """Schema for paginated delivery records"""

    success: bool = True
    messages: list[MessageResponse]
    total: int
    limit: int
    offset: int


__all__ = [
    "MediaAttachment",
    "SendMessageRequest",
    "SendMessageResponse",
    "MessageResponse",
    "MessageListResponse",
]
