"""Shared post view models and engagement meta helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Comment, Post, User
from services.engagement import ENGAGEMENT_POLICIES, EngagementKind
from .schemas import ApiModel


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class AuthorSummary(ApiModel):
    id: int
    username: str
    first_name: str | None = None
    last_name: str | None = None
    avatar_key: str | None = None


class PostResponse(ApiModel):
    id: int
    title: str
    content: str
    published: bool
    author_id: int
    author: AuthorSummary
    created_at: datetime
    updated_at: datetime
    like_count: int = 0
    save_count: int = 0
    share_count: int = 0
    read_count: int = 0
    comment_count: int = 0
    viewer_has_liked: bool = False
    viewer_has_saved: bool = False
    viewer_has_shared: bool = False
    viewer_has_read: bool = False

    @classmethod
    def from_post(
        cls,
        post: Post,
        author: User,
        meta: "EngagementMeta | None" = None,
    ) -> "PostResponse":
        if post.id is None:
            raise ValueError("Post record missing identifier")
        meta = meta or EngagementMeta()
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            published=post.published,
            author_id=post.author_id,
            author=AuthorSummary.model_validate(author),
            created_at=post.created_at,
            updated_at=post.updated_at,
            like_count=meta.count(EngagementKind.LIKE, post.id),
            save_count=meta.count(EngagementKind.SAVE, post.id),
            share_count=meta.count(EngagementKind.SHARE, post.id),
            read_count=meta.count(EngagementKind.READ, post.id),
            comment_count=meta.comment_counts.get(post.id, 0),
            viewer_has_liked=meta.viewer_has(EngagementKind.LIKE, post.id),
            viewer_has_saved=meta.viewer_has(EngagementKind.SAVE, post.id),
            viewer_has_shared=meta.viewer_has(EngagementKind.SHARE, post.id),
            viewer_has_read=meta.viewer_has(EngagementKind.READ, post.id),
        )


PostResponse.model_rebuild()


class PostSummary(ApiModel):
    """Compact post shape used by per-user activity listings."""

    id: int
    title: str
    content: str
    published: bool
    created_at: datetime
    author: AuthorSummary

    @classmethod
    def from_post(cls, post: Post, author: User) -> "PostSummary":
        if post.id is None:
            raise ValueError("Post record missing identifier")
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            published=post.published,
            created_at=post.created_at,
            author=AuthorSummary.model_validate(author),
        )


@dataclass
class EngagementMeta:
    counts: dict[EngagementKind, dict[int, int]] = field(default_factory=dict)
    viewer_sets: dict[EngagementKind, set[int]] = field(default_factory=dict)
    comment_counts: dict[int, int] = field(default_factory=dict)

    def count(self, kind: EngagementKind, post_id: int) -> int:
        return self.counts.get(kind, {}).get(post_id, 0)

    def viewer_has(self, kind: EngagementKind, post_id: int) -> bool:
        return post_id in self.viewer_sets.get(kind, set())


async def collect_engagement_meta(
    session: AsyncSession,
    post_ids: list[int],
    viewer_id: int | None,
) -> EngagementMeta:
    """Batch-load engagement counters and the viewer's flags for ``post_ids``."""
    meta = EngagementMeta()
    if not post_ids:
        return meta

    for kind, policy in ENGAGEMENT_POLICIES.items():
        entity = cast(Any, policy.model)
        post_id_column = cast(ColumnElement[int], entity.post_id)
        count_result = await session.execute(
            select(post_id_column, func.count())
            .where(post_id_column.in_(post_ids))
            .group_by(post_id_column)
        )
        meta.counts[kind] = {post_id: int(total) for post_id, total in count_result.all()}

        if viewer_id is None:
            continue
        viewer_result = await session.execute(
            select(post_id_column).where(
                _eq(entity.user_id, viewer_id),
                post_id_column.in_(post_ids),
            )
        )
        meta.viewer_sets[kind] = {row[0] for row in viewer_result.all()}

    comment_post_column = cast(ColumnElement[int], Comment.post_id)
    comment_result = await session.execute(
        select(comment_post_column, func.count())
        .where(comment_post_column.in_(post_ids))
        .group_by(comment_post_column)
    )
    meta.comment_counts = {post_id: int(total) for post_id, total in comment_result.all()}
    return meta


async def build_post_responses(
    session: AsyncSession,
    rows: list[tuple[Post, User]],
    viewer_id: int | None,
) -> list[PostResponse]:
    post_ids = [post.id for post, _author in rows if post.id is not None]
    meta = await collect_engagement_meta(session, post_ids, viewer_id)
    return [PostResponse.from_post(post, author, meta) for post, author in rows]
