"""Avatar media URL endpoints."""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core import NotFound
from models import User
from services import create_presigned_get_url
from .schemas import ApiModel, RecordIdPath

router = APIRouter(prefix="/media", tags=["media"])

SIGNED_MEDIA_URL_TTL_SECONDS = 120
MEDIA_NO_STORE_CACHE_CONTROL = "no-store"


class MediaURLResponse(ApiModel):
    url: str
    expires_in: int


@router.get("/avatars/{user_id}", response_model=MediaURLResponse)
async def get_avatar_url(
    user_id: RecordIdPath,
    response: Response,
    session: AsyncSession = Depends(get_db),
) -> MediaURLResponse:
    response.headers["Cache-Control"] = MEDIA_NO_STORE_CACHE_CONTROL

    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if user.avatar_key is None:
        raise NotFound("Media not found")

    signed_url = await asyncio.to_thread(
        create_presigned_get_url,
        user.avatar_key,
        expires_seconds=SIGNED_MEDIA_URL_TTL_SECONDS,
    )
    return MediaURLResponse(url=signed_url, expires_in=SIGNED_MEDIA_URL_TTL_SECONDS)
