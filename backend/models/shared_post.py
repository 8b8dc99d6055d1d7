"""Shared post model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, func
from sqlmodel import Field, SQLModel


class SharedPost(SQLModel, table=True):
    """Records that a user shared a post; never reversed."""

    __tablename__ = "shared_posts"
    __table_args__ = (
        Index("ix_shared_posts_user_created_at", "user_id", "created_at"),
    )

    user_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    post_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            nullable=False,
        )
    )
