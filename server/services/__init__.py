"""
Service modules for the WhatsApp session service.
"""

from server.services.accounts import (
    AccountDirectory,
    AccountRecord,
    FilesystemAccountDirectory,
    SqlAccountDirectory,
)
from server.services.media import load_media, sanitize_filename, save_upload
from server.services.message_log import MessageLog

__all__ = [
    "AccountDirectory",
    "AccountRecord",
    "FilesystemAccountDirectory",
    "SqlAccountDirectory",
    "MessageLog",
    "load_media",
    "sanitize_filename",
    "save_upload",
]
