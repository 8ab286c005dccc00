"""
Pydantic schemas for Account / Session API.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class AccountRequest(ApiModel):
    """Schema for create / activate / logout"""

    # Checked by validate_account_id so every bad id gets the same error
    account_id: Optional[str] = Field(None, description="Account identifier")


class AccountResponse(ApiModel):
    """Schema for one account record"""

    account_id: str
    status: str
    active: bool = False
    ready: bool = False
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None


class AccountListResponse(ApiModel):
    """Schema for account list"""

    success: bool = True
    accounts: list[AccountResponse]


class AccountActionResponse(ApiModel):
    """Schema for create / activate / logout / refresh results"""

    success: bool = True
    message: str
    account_id: str
    account: Optional[AccountResponse] = None


class AccountStatusResponse(ApiModel):
    """Schema for live session + stored record snapshot"""

    success: bool = True
    account_id: str
    active: bool
    ready: bool
    status: Optional[str] = None
    subscribers: int = 0
    session: Optional[Dict[str, Any]] = None
    account: Optional[AccountResponse] = None


__all__ = [
    "ApiModel",
    "AccountRequest",
    "AccountResponse",
    "AccountListResponse",
    "AccountActionResponse",
    "AccountStatusResponse",
]
