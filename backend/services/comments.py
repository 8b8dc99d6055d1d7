"""Post comments: creation and oldest-first listing."""

from __future__ import annotations

import logging
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core import ValidationFailure
from models import Comment, User
from .post_policy import require_positive_id, require_post_exists, require_user_exists

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000
CommentRow = tuple[Comment, User]


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


def normalize_comment_content(content: str | None) -> str:
    normalized = (content or "").strip()
    if not normalized:
        raise ValidationFailure("Comment content is required")
    if len(normalized) > MAX_COMMENT_LENGTH:
        raise ValidationFailure(
            f"Comment must be at most {MAX_COMMENT_LENGTH} characters"
        )
    return normalized


async def create_comment(
    session: AsyncSession,
    *,
    post_id: int | None,
    user_id: int | None,
    content: str | None,
) -> CommentRow:
    valid_post_id = require_positive_id(post_id, detail="Post id is required")
    valid_user_id = require_positive_id(user_id, detail="User id is required")
    text = normalize_comment_content(content)
    await require_post_exists(session, valid_post_id)
    await require_user_exists(session, valid_user_id)

    comment = Comment(user_id=valid_user_id, post_id=valid_post_id, content=text)
    session.add(comment)
    await session.commit()
    await session.refresh(comment)

    author = await session.get(User, valid_user_id)
    if author is None:
        raise ValueError("Comment author disappeared after insert")
    logger.info("User %s commented on post %s", valid_user_id, valid_post_id)
    return comment, author


async def list_comments(
    session: AsyncSession,
    post_id: int,
) -> tuple[list[CommentRow], int]:
    """Return every comment on ``post_id`` oldest first, with the total count."""
    post_id = require_positive_id(post_id, detail="Post id is required")
    await require_post_exists(session, post_id)

    result = await session.execute(
        select(cast(Any, Comment), cast(Any, User))
        .join(User, _eq(User.id, Comment.user_id))
        .where(_eq(Comment.post_id, post_id))
        .order_by(_asc(Comment.created_at), _asc(Comment.id))
    )
    rows = cast(list[CommentRow], [tuple(row) for row in result.all()])

    count_result = await session.execute(
        select(func.count())
        .select_from(cast(Any, Comment))
        .where(_eq(Comment.post_id, post_id))
    )
    return rows, int(count_result.scalar_one() or 0)


__all__ = [
    "MAX_COMMENT_LENGTH",
    "create_comment",
    "list_comments",
    "normalize_comment_content",
]
