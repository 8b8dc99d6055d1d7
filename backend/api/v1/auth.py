"""Authentication endpoints."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, cast

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field, field_validator
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import Identity, get_current_identity, get_db
from core import (
    MAX_PASSWORD_BYTES,
    Conflict,
    InvalidCredential,
    NotFound,
    create_access_token,
    hash_password,
    needs_rehash,
    verify_password,
)
from db.errors import is_unique_violation
from models import User
from services.rate_limiter import AUTH_SCOPE, rate_limit
from .schemas import ApiModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

DUPLICATE_USER_DETAIL = "User with this email or username already exists"
INVALID_LOGIN_DETAIL = "Invalid email or password"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class RegisterRequest(ApiModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9]+$")
    password: str = Field(min_length=6, max_length=128)
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)

    @field_validator("password")
    @classmethod
    def password_fits_hash(cls, value: str) -> str:
        return _check_password_bytes(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def blank_names_are_absent(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("password")
    @classmethod
    def password_fits_hash(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserResponse(ApiModel):
    id: int
    email: str
    username: str
    first_name: str | None = None
    last_name: str | None = None
    avatar_key: str | None = None
    created_at: datetime


class AuthResponse(ApiModel):
    message: str
    user: UserResponse
    token: str


def _issue_token(user: User) -> str:
    if user.id is None:
        raise ValueError("User record missing identifier")
    return create_access_token(str(user.id))


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit(AUTH_SCOPE))],
)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_db),
) -> AuthResponse:
    normalized_email = _normalize_email(str(payload.email))
    existing = await session.execute(
        select(User)
        .where(
            or_(
                _eq(func.lower(cast(Any, User.email)), normalized_email),
                _eq(User.username, payload.username),
            )
        )
        .limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        raise Conflict(DUPLICATE_USER_DETAIL)

    user = User(
        email=normalized_email,
        username=payload.username,
        password_hash=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise Conflict(DUPLICATE_USER_DETAIL) from exc
        raise
    await session.refresh(user)

    logger.info("Registered user %s", user.id)
    return AuthResponse(
        message="User registered successfully",
        user=UserResponse.model_validate(user),
        token=_issue_token(user),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(rate_limit(AUTH_SCOPE))],
)
async def login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_db),
) -> AuthResponse:
    normalized_email = _normalize_email(str(payload.email))
    result = await session.execute(
        select(User).where(_eq(func.lower(cast(Any, User.email)), normalized_email)).limit(1)
    )
    user = result.scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise InvalidCredential(
            INVALID_LOGIN_DETAIL,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(payload.password)
        await session.commit()
        await session.refresh(user)

    return AuthResponse(
        message="Login successful",
        user=UserResponse.model_validate(user),
        token=_issue_token(user),
    )


@router.get("/profile", response_model=UserResponse)
async def profile(
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UserResponse:
    user = await session.get(User, identity.user_id)
    if user is None:
        raise NotFound("User not found")
    return UserResponse.model_validate(user)
