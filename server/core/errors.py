"""
Service Error Taxonomy - server/core/errors.py

Every error the service raises on purpose derives from ServiceError and
carries the HTTP status and machine-readable code it is rendered with.
"""

from __future__ import annotations

from typing import Any, Dict


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, "code": self.code}


class InvalidArgument(ServiceError):
    """Malformed or missing request fields."""

    status_code = 400
    code = "INVALID_ARGUMENT"


class NotFound(ServiceError):
    """Account, session, template or file does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class NotReady(ServiceError):
    """Session missing or its provider client has not reached `ready`."""

    status_code = 400
    code = "NOT_READY"


class ProviderFailure(ServiceError):
    """The messaging provider rejected an initialize/send/destroy call."""

    status_code = 500
    code = "PROVIDER_FAILURE"


class PersistenceFailure(ServiceError):
    """Database operation failed or no database is configured."""

    status_code = 500
    code = "PERSISTENCE_FAILURE"


__all__ = [
    "ServiceError",
    "InvalidArgument",
    "NotFound",
    "NotReady",
    "ProviderFailure",
    "PersistenceFailure",
]
