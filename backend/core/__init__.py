"""Core configuration, security and error primitives."""

from .config import MAX_RECORD_ID, settings
from .errors import (
    ApiError,
    AuthenticationRequired,
    Conflict,
    Forbidden,
    InvalidCredential,
    NotFound,
    ValidationFailure,
)
from .security import (
    MAX_PASSWORD_BYTES,
    create_access_token,
    decode_token,
    hash_password,
    needs_rehash,
    resolve_token_subject,
    verify_password,
)

__all__ = [
    "settings",
    "MAX_RECORD_ID",
    "ApiError",
    "AuthenticationRequired",
    "Conflict",
    "Forbidden",
    "InvalidCredential",
    "NotFound",
    "ValidationFailure",
    "create_access_token",
    "decode_token",
    "hash_password",
    "needs_rehash",
    "MAX_PASSWORD_BYTES",
    "resolve_token_subject",
    "verify_password",
]
