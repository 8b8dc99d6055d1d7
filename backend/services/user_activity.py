"""Per-user activity listings: posts a user liked, saved, shared, read or commented on."""

from __future__ import annotations

from enum import Enum
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql import ColumnElement

from models import Comment, Post, User
from .engagement import ENGAGEMENT_POLICIES, EngagementKind
from .post_policy import require_positive_id, require_user_exists

ActivityRow = tuple[Post, User]


class ActivityKind(str, Enum):
    LIKED = "liked"
    SAVED = "saved"
    SHARED = "shared"
    READ = "read"
    COMMENTED = "commented"


_ENGAGEMENT_BY_ACTIVITY: dict[ActivityKind, EngagementKind] = {
    ActivityKind.LIKED: EngagementKind.LIKE,
    ActivityKind.SAVED: EngagementKind.SAVE,
    ActivityKind.SHARED: EngagementKind.SHARE,
    ActivityKind.READ: EngagementKind.READ,
}


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


async def list_activity_posts(
    session: AsyncSession,
    kind: ActivityKind,
    user_id: int,
    *,
    offset: int = 0,
    limit: int | None = None,
) -> list[ActivityRow]:
    """Posts the user engaged with, most recent engagement first.

    Commented posts appear once no matter how many comments the user left,
    positioned by their latest comment.
    """
    user_id = require_positive_id(user_id, detail="User id is required")
    await require_user_exists(session, user_id)

    author = aliased(User)
    if kind is ActivityKind.COMMENTED:
        latest = (
            select(
                cast(Any, Comment.post_id).label("post_id"),
                func.max(cast(Any, Comment.created_at)).label("engaged_at"),
            )
            .where(_eq(Comment.user_id, user_id))
            .group_by(cast(Any, Comment.post_id))
            .subquery()
        )
        post_id_column: Any = latest.c.post_id
        engaged_at: Any = latest.c.engaged_at
        source: Any = latest
        conditions: list[ColumnElement[bool]] = []
    else:
        entity = cast(Any, ENGAGEMENT_POLICIES[_ENGAGEMENT_BY_ACTIVITY[kind]].model)
        post_id_column = entity.post_id
        engaged_at = entity.created_at
        source = entity
        conditions = [_eq(entity.user_id, user_id)]

    query = (
        select(cast(Any, Post), author)
        .join(source, _eq(post_id_column, Post.id))
        .join(author, _eq(author.id, Post.author_id))
        .where(*conditions)
        .order_by(_desc(engaged_at), _desc(Post.id))
    )
    if offset > 0:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)

    result = await session.execute(query)
    return cast(list[ActivityRow], [tuple(row) for row in result.all()])


__all__ = ["ActivityKind", "list_activity_posts"]
