"""
Pydantic schemas for Template API.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from server.schemas.accounts import ApiModel


class TemplateCreate(ApiModel):
    """Schema for creating a new template"""

    name: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1, description="Message body")


class TemplateUpdate(ApiModel):
    """Schema for updating template"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)


class TemplateResponse(ApiModel):
    """Schema for template response"""

    id: UUID
    name: str
    content: str
    created_at: datetime
    updated_at: datetime


class TemplateEnvelope(ApiModel):
    """Schema for single-template results"""

    success: bool = True
    template: TemplateResponse


class TemplateListResponse(ApiModel):
    """Schema for paginated template list"""

    success: bool = True
    templates: list[TemplateResponse]
    total: int
    limit: int
    offset: int


__all__ = [
    "TemplateCreate",
    "TemplateUpdate",
    "TemplateResponse",
    "TemplateEnvelope",
    "TemplateListResponse",
]
