"""Post creation, retrieval, listing and search endpoints."""

from __future__ import annotations

import logging
from typing import Annotated, Any, cast

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import Identity, get_current_identity, get_db, get_optional_identity
from core import MAX_RECORD_ID, NotFound, ValidationFailure
from models import Post, User
from services import post_search
from services.post_policy import require_post_owner, require_user_exists
from services.rate_limiter import CREATE_POST_SCOPE, rate_limit
from .pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PageInfo, build_page_info, page_offset
from .post_views import PostResponse, build_post_responses
from .schemas import ApiModel, MessageResponse, RecordIdPath

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])
MAX_POST_TITLE_LENGTH = 200


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class PostCreateRequest(ApiModel):
    title: str = Field(min_length=1, max_length=MAX_POST_TITLE_LENGTH)
    content: str = Field(min_length=1)
    published: bool = False


class PostUpdateRequest(ApiModel):
    title: str | None = Field(default=None, min_length=1, max_length=MAX_POST_TITLE_LENGTH)
    content: str | None = Field(default=None, min_length=1)
    published: bool | None = None


class PostListFilters(ApiModel):
    published: bool | None = None
    author_id: int | None = None


class PostListResponse(ApiModel):
    posts: list[PostResponse]
    pagination: PageInfo
    filters: PostListFilters


class PostSearchResponse(ApiModel):
    query: str
    results: list[PostResponse]
    count: int


def _viewer_id(identity: Identity | None) -> int | None:
    return identity.user_id if identity is not None else None


async def _load_post_row(session: AsyncSession, post_id: int) -> tuple[Post, User]:
    result = await session.execute(
        select(cast(Any, Post), cast(Any, User))
        .join(User, _eq(User.id, Post.author_id))
        .where(_eq(Post.id, post_id))
        .limit(1)
    )
    row = result.first()
    if row is None:
        raise NotFound("Post not found")
    post, author = row
    return post, author


async def _render_post(
    session: AsyncSession,
    post_id: int,
    viewer_id: int | None,
) -> PostResponse:
    row = await _load_post_row(session, post_id)
    [rendered] = await build_post_responses(session, [row], viewer_id)
    return rendered


@router.get("", response_model=PostListResponse)
async def list_posts(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    published: bool | None = None,
    author_id: Annotated[int | None, Query(alias="authorId", ge=1, le=MAX_RECORD_ID)] = None,
    session: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_optional_identity),
) -> PostListResponse:
    rows, total = await post_search.list_posts(
        session,
        offset=page_offset(page, limit),
        limit=limit,
        published=published,
        author_id=author_id,
    )
    posts = await build_post_responses(session, rows, _viewer_id(identity))
    return PostListResponse(
        posts=posts,
        pagination=build_page_info(page=page, limit=limit, total=total),
        filters=PostListFilters(published=published, author_id=author_id),
    )


@router.get("/search", response_model=PostSearchResponse)
async def search_posts(
    q: str | None = None,
    author: str | None = None,
    published: bool | None = None,
    sort_by: Annotated[str | None, Query(alias="sortBy")] = None,
    order: post_search.SortOrder = "desc",
    session: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_optional_identity),
) -> PostSearchResponse:
    rows = await post_search.search_posts(
        session,
        query=q,
        author=author,
        published=published,
        sort_by=sort_by,
        order=order,
    )
    results = await build_post_responses(session, rows, _viewer_id(identity))
    return PostSearchResponse(
        query=(q or "").strip(),
        results=results,
        count=len(results),
    )


@router.get("/{post_id}", response_model=PostResponse)
async def get_post(
    post_id: RecordIdPath,
    session: AsyncSession = Depends(get_db),
    identity: Identity | None = Depends(get_optional_identity),
) -> PostResponse:
    return await _render_post(session, post_id, _viewer_id(identity))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=PostResponse,
    dependencies=[Depends(rate_limit(CREATE_POST_SCOPE))],
)
async def create_post(
    payload: PostCreateRequest,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> PostResponse:
    await require_user_exists(session, identity.user_id)

    post = Post(
        title=payload.title,
        content=payload.content,
        published=payload.published,
        author_id=identity.user_id,
    )
    session.add(post)
    await session.commit()
    await session.refresh(post)
    if post.id is None:
        raise ValueError("Post record missing identifier")

    logger.info("User %s created post %s", identity.user_id, post.id)
    return await _render_post(session, post.id, identity.user_id)


@router.put("/{post_id}", response_model=PostResponse)
async def update_post(
    post_id: RecordIdPath,
    payload: PostUpdateRequest,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> PostResponse:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise ValidationFailure(
            "Validation failed",
            details="At least one of title, content or published must be provided",
        )

    post = await require_post_owner(
        session,
        post_id=post_id,
        viewer_id=identity.user_id,
        action="update",
    )
    for field_name, value in changes.items():
        setattr(post, field_name, value)
    session.add(post)
    await session.commit()
    await session.refresh(post)

    return await _render_post(session, post_id, identity.user_id)


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: RecordIdPath,
    session: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> MessageResponse:
    post = await require_post_owner(
        session,
        post_id=post_id,
        viewer_id=identity.user_id,
        action="delete",
    )
    # Likes, saves, shares, reads and comments go with the post via ON DELETE CASCADE.
    await session.delete(post)
    await session.commit()

    logger.info("User %s deleted post %s", identity.user_id, post_id)
    return MessageResponse(message="Post deleted successfully!")
