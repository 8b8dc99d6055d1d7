"""SQLModel models package."""

from .comment import Comment
from .like import Like
from .post import Post
from .post_read import PostRead
from .saved_post import SavedPost
from .shared_post import SharedPost
from .user import User

__all__ = [
    "User",
    "Post",
    "Like",
    "SavedPost",
    "SharedPost",
    "PostRead",
    "Comment",
]
