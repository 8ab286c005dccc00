# Import all sub-modules to register them with metadata
from .accounts import Account
from .base import AccountStatus, Base, MessageStatus
from .messaging import Message, Template

__all__ = [
    "Base",
    "Account",
    "AccountStatus",
    "Message",
    "MessageStatus",
    "Template",
]
