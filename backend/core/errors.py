"""Error kinds surfaced to API clients.

Every expected failure raised by services and routes is one of the classes
below. The boundary handlers in ``app.py`` turn them into the shared
``{"error": ..., "details": ...}`` response body.
"""

from __future__ import annotations

from fastapi import status


class ApiError(Exception):
    """Base class for failures with a client-facing message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_body(self) -> dict[str, str]:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailure(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class AuthenticationRequired(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access token required"


class InvalidCredential(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Invalid or expired token"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "A record with this data already exists"


__all__ = [
    "ApiError",
    "AuthenticationRequired",
    "Conflict",
    "Forbidden",
    "InvalidCredential",
    "NotFound",
    "ValidationFailure",
]
