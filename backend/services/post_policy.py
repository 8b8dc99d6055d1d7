"""Post existence and ownership policy checks."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import MAX_RECORD_ID, Forbidden, NotFound, ValidationFailure
from models import Post, User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def require_positive_id(value: int | None, *, detail: str) -> int:
    """Return ``value`` when it is a usable identifier, otherwise raise 400."""
    if value is None or isinstance(value, bool) or not 0 < value <= MAX_RECORD_ID:
        raise ValidationFailure(detail)
    return value


async def require_post_exists(
    session: AsyncSession,
    post_id: int,
) -> int:
    """Return the post author id or raise 404 when the post does not exist."""
    post_author_column = cast(ColumnElement[int], Post.author_id)
    result = await session.execute(
        select(post_author_column)
        .where(_eq(Post.id, post_id))
        .limit(1)
    )
    author_id = result.scalar_one_or_none()
    if author_id is None:
        raise NotFound("Post not found")
    return author_id


async def require_user_exists(
    session: AsyncSession,
    user_id: int,
) -> None:
    user_id_column = cast(ColumnElement[int], User.id)
    result = await session.execute(
        select(user_id_column).where(_eq(user_id_column, user_id)).limit(1)
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("User not found")


async def require_post_owner(
    session: AsyncSession,
    *,
    post_id: int,
    viewer_id: int,
    action: str,
) -> Post:
    """Load a post the viewer authored.

    A missing post is reported as 404 before ownership is checked, so the
    403 response does reveal that the post exists.
    """
    result = await session.execute(
        select(cast(Any, Post)).where(_eq(Post.id, post_id)).limit(1)
    )
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFound("Post not found")
    if post.author_id != viewer_id:
        raise Forbidden(f"You can only {action} your own posts")
    return post
