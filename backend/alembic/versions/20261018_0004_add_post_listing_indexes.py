"""Add indexes backing newest-first post listings and author filters."""

from collections.abc import Sequence

from alembic import op

revision: str = "20261018_0004"
down_revision: str | None = "20261018_0003"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_index(
        "ix_posts_created_at_id",
        "posts",
        ["created_at", "id"],
        unique=False,
    )
    op.create_index(
        "ix_posts_author_created_at",
        "posts",
        ["author_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_posts_author_created_at", table_name="posts")
    op.drop_index("ix_posts_created_at_id", table_name="posts")
