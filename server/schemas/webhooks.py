"""
Pydantic schemas for the provider webhook.

Body posted by the automation sidecar:
    {"accountId": "alice", "event": {"type": "qr", "qr": "2@abc..."}}
"""

from typing import Any, Dict

from pydantic import Field

from server.schemas.accounts import ApiModel


class ProviderWebhook(ApiModel):
    """One lifecycle event for one account"""

    account_id: str = Field(..., min_length=1)
    event: Dict[str, Any]


__all__ = ["ProviderWebhook"]
