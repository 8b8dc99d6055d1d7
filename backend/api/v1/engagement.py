"""Like, save, share, read and comment endpoints for posts."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core import MAX_RECORD_ID
from models import Comment, User
from services import comments as comment_service
from services.engagement import (
    EngagementKind,
    EngagementState,
    get_engagement_status,
    record_engagement,
    toggle_engagement,
)
from .post_views import AuthorSummary
from .schemas import ApiModel, RecordIdPath

router = APIRouter(prefix="/posts", tags=["engagement"])

UserIdQuery = Annotated[int | None, Query(alias="userId", le=MAX_RECORD_ID)]


class EngagementRequest(ApiModel):
    post_id: int | None = None
    user_id: int | None = None


class LikeResponse(ApiModel):
    liked: bool
    like_count: int
    message: str | None = None


class SaveResponse(ApiModel):
    saved: bool
    save_count: int
    message: str | None = None


class ShareResponse(ApiModel):
    shared: bool
    share_count: int
    message: str | None = None


class ReadResponse(ApiModel):
    read: bool | None = None
    read_count: int


class CommentRequest(ApiModel):
    post_id: int | None = None
    user_id: int | None = None
    content: str | None = None


class CommentResponse(ApiModel):
    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime
    user: AuthorSummary
    viewer_is_author: bool = False

    @classmethod
    def from_comment(
        cls,
        comment: Comment,
        author: User,
        *,
        viewer_id: int | None = None,
    ) -> "CommentResponse":
        if comment.id is None:
            raise ValueError("Comment record missing identifier")
        return cls(
            id=comment.id,
            post_id=comment.post_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            user=AuthorSummary.model_validate(author),
            viewer_is_author=viewer_id is not None and comment.user_id == viewer_id,
        )


class CommentListResponse(ApiModel):
    comments: list[CommentResponse]
    comment_count: int


def _like_response(state: EngagementState, *, with_message: bool = True) -> LikeResponse:
    return LikeResponse(
        liked=state.active,
        like_count=state.total_count,
        message=("Post liked" if state.active else "Post unliked") if with_message else None,
    )


def _save_response(state: EngagementState, *, with_message: bool = True) -> SaveResponse:
    return SaveResponse(
        saved=state.active,
        save_count=state.total_count,
        message=("Post saved" if state.active else "Post unsaved") if with_message else None,
    )


@router.post("/like", response_model=LikeResponse)
async def like_post(
    payload: EngagementRequest,
    session: AsyncSession = Depends(get_db),
) -> LikeResponse:
    state = await toggle_engagement(
        session,
        EngagementKind.LIKE,
        user_id=payload.user_id,
        post_id=payload.post_id,
    )
    return _like_response(state)


@router.get("/{post_id}/like-status", response_model=LikeResponse, response_model_exclude_none=True)
async def like_status(
    post_id: RecordIdPath,
    user_id: UserIdQuery = None,
    session: AsyncSession = Depends(get_db),
) -> LikeResponse:
    state = await get_engagement_status(
        session,
        EngagementKind.LIKE,
        post_id=post_id,
        user_id=user_id,
    )
    return _like_response(state, with_message=False)


@router.post("/save", response_model=SaveResponse)
async def save_post(
    payload: EngagementRequest,
    session: AsyncSession = Depends(get_db),
) -> SaveResponse:
    state = await toggle_engagement(
        session,
        EngagementKind.SAVE,
        user_id=payload.user_id,
        post_id=payload.post_id,
    )
    return _save_response(state)


@router.get("/{post_id}/save-status", response_model=SaveResponse, response_model_exclude_none=True)
async def save_status(
    post_id: RecordIdPath,
    user_id: UserIdQuery = None,
    session: AsyncSession = Depends(get_db),
) -> SaveResponse:
    state = await get_engagement_status(
        session,
        EngagementKind.SAVE,
        post_id=post_id,
        user_id=user_id,
    )
    return _save_response(state, with_message=False)


@router.post("/share", response_model=ShareResponse)
async def share_post(
    payload: EngagementRequest,
    session: AsyncSession = Depends(get_db),
) -> ShareResponse:
    state = await record_engagement(
        session,
        EngagementKind.SHARE,
        user_id=payload.user_id,
        post_id=payload.post_id,
    )
    return ShareResponse(
        shared=state.active,
        share_count=state.total_count,
        message="Post shared",
    )


@router.get("/{post_id}/share-status", response_model=ShareResponse, response_model_exclude_none=True)
async def share_status(
    post_id: RecordIdPath,
    user_id: UserIdQuery = None,
    session: AsyncSession = Depends(get_db),
) -> ShareResponse:
    state = await get_engagement_status(
        session,
        EngagementKind.SHARE,
        post_id=post_id,
        user_id=user_id,
    )
    return ShareResponse(shared=state.active, share_count=state.total_count)


@router.post("/read", response_model=ReadResponse, response_model_exclude_none=True)
async def read_post(
    payload: EngagementRequest,
    session: AsyncSession = Depends(get_db),
) -> ReadResponse:
    state = await record_engagement(
        session,
        EngagementKind.READ,
        user_id=payload.user_id,
        post_id=payload.post_id,
    )
    return ReadResponse(read=state.active, read_count=state.total_count)


@router.get("/{post_id}/read", response_model=ReadResponse, response_model_exclude_none=True)
async def read_count(
    post_id: RecordIdPath,
    session: AsyncSession = Depends(get_db),
) -> ReadResponse:
    state = await get_engagement_status(session, EngagementKind.READ, post_id=post_id)
    return ReadResponse(read_count=state.total_count)


@router.post("/comment", status_code=status.HTTP_201_CREATED, response_model=CommentResponse)
async def create_comment(
    payload: CommentRequest,
    session: AsyncSession = Depends(get_db),
) -> CommentResponse:
    comment, author = await comment_service.create_comment(
        session,
        post_id=payload.post_id,
        user_id=payload.user_id,
        content=payload.content,
    )
    return CommentResponse.from_comment(comment, author, viewer_id=payload.user_id)


@router.get("/{post_id}/comments", response_model=CommentListResponse)
async def list_comments(
    post_id: RecordIdPath,
    user_id: UserIdQuery = None,
    session: AsyncSession = Depends(get_db),
) -> CommentListResponse:
    rows, total = await comment_service.list_comments(session, post_id)
    return CommentListResponse(
        comments=[
            CommentResponse.from_comment(comment, author, viewer_id=user_id)
            for comment, author in rows
        ],
        comment_count=total,
    )
