"""
Service-layer exceptions.

Service functions raise these instead of ``HTTPException`` so they stay
usable outside a request. The API layer renders them into the
``{error, field?}`` envelope with the attached status code.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for expected, client-facing failures."""

    status_code: int = 400

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationFailed(ServiceError):
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        missing_fields: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, field=field)
        self.missing_fields = missing_fields


class InvalidCredentials(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    """Row missing, or present but not in a state the operation accepts."""

    status_code = 404


class Conflict(ServiceError):
    status_code = 409
