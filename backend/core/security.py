"""Password hashing and signed access tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import JWTError, jwt

from .config import MAX_RECORD_ID, settings

ACCESS_TOKEN_TYPE = "access"
# bcrypt only looks at the first 72 bytes and newer releases refuse longer input.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.password_hash_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed or foreign digests never verify.
        return False


def needs_rehash(password_hash: str) -> bool:
    """Return True when the digest was produced with a different cost factor."""
    parts = password_hash.split("$")
    if len(parts) < 4:
        return True
    try:
        rounds = int(parts[2])
    except ValueError:
        return True
    return rounds != settings.password_hash_rounds


def create_access_token(
    subject: str,
    *,
    expires_delta: timedelta | None = None,
) -> str:
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims: dict[str, Any] = {
        "sub": subject,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and verify a signed token, raising ValueError when it is unusable."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc


def resolve_token_subject(token: str) -> int:
    """Return the user id carried by an access token."""
    payload = decode_token(token)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise ValueError("Unexpected token type")
    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise ValueError("Token subject is not a user identifier") from exc
    if not 0 < user_id <= MAX_RECORD_ID:
        raise ValueError("Token subject is not a user identifier")
    return user_id
