"""Post read-tracking model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, func
from sqlmodel import Field, SQLModel


class PostRead(SQLModel, table=True):
    """Records the latest time a user read a post."""

    __tablename__ = "post_reads"
    __table_args__ = (
        Index("ix_post_reads_user_created_at", "user_id", "created_at"),
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
    # Refreshed on every repeat read.
    created_at: datetime = Field(
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            nullable=False,
        )
    )
