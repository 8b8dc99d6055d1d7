"""User profile, activity and avatar endpoints."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import Identity, get_current_identity, get_db
from core import NotFound, ValidationFailure, settings
from models import Post, User
from services import (
    UploadTooLargeError,
    build_avatar_key,
    delete_object,
    process_image_bytes,
    put_object_bytes,
    read_upload_file,
)
from services.user_activity import ActivityKind, list_activity_posts
from .pagination import MAX_PAGE_SIZE, set_next_offset_header
from .post_views import PostSummary
from .schemas import ApiModel, MessageResponse, RecordIdPath

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

MAX_PROFILE_NAME_LENGTH = 50


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


class UserProfilePublic(ApiModel):
    id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    avatar_key: str | None = None
    created_at: datetime


class UserProfilePrivate(UserProfilePublic):
    email: str
    updated_at: datetime


class ProfileUpdateRequest(ApiModel):
    first_name: str | None = Field(default=None, max_length=MAX_PROFILE_NAME_LENGTH)
    last_name: str | None = Field(default=None, max_length=MAX_PROFILE_NAME_LENGTH)


class AvatarResponse(ApiModel):
    message: str
    avatar_key: str


async def _find_user_by_username(session: AsyncSession, username: str) -> User:
    result = await session.execute(
        select(User).where(_eq(User.username, username)).limit(1)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def _load_current_user(session: AsyncSession, identity: Identity) -> User:
    user = await session.get(User, identity.user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def _activity_page(
    session: AsyncSession,
    response: Response,
    kind: ActivityKind,
    user_id: int,
    *,
    limit: int | None,
    offset: int,
) -> list[PostSummary]:
    rows = await list_activity_posts(
        session,
        kind,
        user_id,
        offset=offset,
        limit=limit + 1 if limit is not None else None,
    )
    if limit is not None:
        has_more = len(rows) > limit
        rows = rows[:limit]
        set_next_offset_header(response, offset=offset, limit=limit, has_more=has_more)
    return [PostSummary.from_post(post, author) for post, author in rows]


LimitQuery = Annotated[int | None, Query(ge=1, le=MAX_PAGE_SIZE)]
OffsetQuery = Annotated[int, Query(ge=0)]


@router.get("/{user_id}/liked-posts", response_model=list[PostSummary])
async def list_liked_posts(
    user_id: RecordIdPath,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    return await _activity_page(
        session, response, ActivityKind.LIKED, user_id, limit=limit, offset=offset
    )


@router.get("/{user_id}/saved-posts", response_model=list[PostSummary])
async def list_saved_posts(
    user_id: RecordIdPath,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    return await _activity_page(
        session, response, ActivityKind.SAVED, user_id, limit=limit, offset=offset
    )


@router.get("/{user_id}/shared-posts", response_model=list[PostSummary])
async def list_shared_posts(
    user_id: RecordIdPath,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    return await _activity_page(
        session, response, ActivityKind.SHARED, user_id, limit=limit, offset=offset
    )


@router.get("/{user_id}/commented-posts", response_model=list[PostSummary])
async def list_commented_posts(
    user_id: RecordIdPath,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    return await _activity_page(
        session, response, ActivityKind.COMMENTED, user_id, limit=limit, offset=offset
    )


@router.get("/{user_id}/read-posts", response_model=list[PostSummary])
async def list_read_posts(
    user_id: RecordIdPath,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    return await _activity_page(
        session, response, ActivityKind.READ, user_id, limit=limit, offset=offset
    )


@router.patch("/me", response_model=UserProfilePrivate)
async def update_me(
    payload: ProfileUpdateRequest,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UserProfilePrivate:
    """Update the authenticated user's first and last name."""
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailure(
            "Validation failed",
            details="At least one of firstName or lastName must be provided",
        )

    user = await _load_current_user(session, identity)
    for field_name, value in changes.items():
        setattr(user, field_name, value.strip() or None)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return UserProfilePrivate.model_validate(user)


@router.post("/me/avatar", response_model=AvatarResponse)
async def upload_avatar(
    avatar: UploadFile = File(...),
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> AvatarResponse:
    user = await _load_current_user(session, identity)
    previous_avatar_key = user.avatar_key

    try:
        data = await read_upload_file(avatar, settings.avatar_max_bytes)
        processed_bytes, content_type = await asyncio.to_thread(process_image_bytes, data)
    except UploadTooLargeError as exc:
        raise HTTPException(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise ValidationFailure(str(exc)) from exc

    object_key = build_avatar_key(identity.user_id)
    await asyncio.to_thread(put_object_bytes, object_key, processed_bytes, content_type)

    user.avatar_key = object_key
    session.add(user)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        try:
            await asyncio.to_thread(delete_object, object_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup uploaded avatar after commit failure",
                extra={"avatar_key": object_key},
                exc_info=cleanup_error,
            )
        raise

    if previous_avatar_key is not None and previous_avatar_key != object_key:
        try:
            await asyncio.to_thread(delete_object, previous_avatar_key)
        except Exception as cleanup_error:
            logger.warning(
                "Failed to cleanup replaced avatar object",
                extra={"avatar_key": previous_avatar_key},
                exc_info=cleanup_error,
            )

    return AvatarResponse(message="Profile image uploaded successfully", avatar_key=object_key)


@router.delete("/me/avatar", response_model=MessageResponse)
async def delete_avatar(
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> MessageResponse:
    user = await _load_current_user(session, identity)
    avatar_key = user.avatar_key
    if avatar_key is None:
        raise NotFound("No profile image to delete")

    user.avatar_key = None
    session.add(user)
    await session.commit()

    try:
        await asyncio.to_thread(delete_object, avatar_key)
    except Exception as cleanup_error:
        logger.warning(
            "Failed to delete avatar object",
            extra={"avatar_key": avatar_key},
            exc_info=cleanup_error,
        )
    return MessageResponse(message="Profile image deleted successfully")


@router.get("/{username}", response_model=UserProfilePublic)
async def get_user_profile(
    username: str,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> UserProfilePublic:
    user = await _find_user_by_username(session, username)
    return UserProfilePublic.model_validate(user)


@router.get("/{username}/posts", response_model=list[PostSummary])
async def list_user_posts(
    username: str,
    response: Response,
    limit: LimitQuery = None,
    offset: OffsetQuery = 0,
    session: AsyncSession = Depends(get_db),
    _identity: Identity = Depends(get_current_identity),
) -> list[PostSummary]:
    """Return posts authored by the specified user, newest first."""
    author = await _find_user_by_username(session, username)

    posts_query = (
        select(Post)
        .where(_eq(Post.author_id, author.id))
        .order_by(_desc(Post.created_at), _desc(Post.id))
    )
    if offset > 0:
        posts_query = posts_query.offset(offset)
    if limit is not None:
        posts_query = posts_query.limit(limit + 1)

    posts_result = await session.execute(posts_query)
    posts = list(posts_result.scalars().all())
    if limit is not None:
        has_more = len(posts) > limit
        posts = posts[:limit]
        set_next_offset_header(response, offset=offset, limit=limit, has_more=has_more)

    return [PostSummary.from_post(post, author) for post in posts]
