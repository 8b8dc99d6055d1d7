"""Shared route dependencies: database session and caller identity."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core import AuthenticationRequired, InvalidCredential, resolve_token_subject
from db.session import get_session

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as proven by a verified access token."""

    user_id: int


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def _token_from(credentials: HTTPAuthorizationCredentials | None) -> str | None:
    if credentials is None:
        return None
    token = credentials.credentials.strip()
    return token or None


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    token = _token_from(credentials)
    if token is None:
        raise AuthenticationRequired()
    try:
        user_id = resolve_token_subject(token)
    except ValueError as exc:
        raise InvalidCredential() from exc
    return Identity(user_id=user_id)


async def get_optional_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity | None:
    """Identity for public routes; a bad token is treated as anonymous."""
    token = _token_from(credentials)
    if token is None:
        return None
    try:
        return Identity(user_id=resolve_token_subject(token))
    except ValueError:
        logger.debug("Ignoring invalid bearer token on public route")
        return None
