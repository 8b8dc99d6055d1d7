"""Version 1 API routers."""

from fastapi import APIRouter

from . import auth, engagement, media, posts, users

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
# Literal engagement paths such as /posts/like are registered before /posts/{post_id}.
api_router.include_router(engagement.router)
api_router.include_router(posts.router)
api_router.include_router(users.router)
api_router.include_router(media.router)

__all__ = ["api_router"]
