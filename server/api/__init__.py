"""
API routers for the WhatsApp session service.
"""

from server.api import (
    accounts,
    events,
    media,
    messages,
    templates,
    webhooks,
)

__all__ = [
    "accounts",
    "events",
    "media",
    "messages",
    "templates",
    "webhooks",
]
