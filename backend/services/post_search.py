"""Post listing and free-text search queries."""

from __future__ import annotations

from typing import Any, Literal, cast

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Select

from core import ValidationFailure
from models import Post, User

SortOrder = Literal["asc", "desc"]
PostRow = tuple[Post, User]

DEFAULT_SORT_FIELD = "createdAt"
SORTABLE_FIELDS: dict[str, Any] = {
    "createdAt": Post.created_at,
    "updatedAt": Post.updated_at,
    "title": Post.title,
    "id": Post.id,
}
LIKE_ESCAPE_CHAR = "\\"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _ilike(column: Any, pattern: str) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column.ilike(pattern, escape=LIKE_ESCAPE_CHAR))


def _desc(column: Any) -> Any:
    return cast(Any, column).desc()


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


def contains_pattern(term: str) -> str:
    """Build a LIKE pattern matching ``term`` literally anywhere in a value."""
    escaped = (
        term.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", f"{LIKE_ESCAPE_CHAR}%")
        .replace("_", f"{LIKE_ESCAPE_CHAR}_")
    )
    return f"%{escaped}%"


def resolve_sort_column(sort_by: str | None) -> Any:
    field = (sort_by or DEFAULT_SORT_FIELD).strip()
    try:
        return SORTABLE_FIELDS[field]
    except KeyError:
        allowed = ", ".join(SORTABLE_FIELDS)
        raise ValidationFailure(
            f"Unsupported sortBy value: {field}",
            details=f"sortBy must be one of: {allowed}",
        ) from None


def _post_with_author() -> Select[Any]:
    return select(cast(Any, Post), cast(Any, User)).join(
        User, _eq(User.id, Post.author_id)
    )


def build_post_filters(
    *,
    published: bool | None = None,
    author_id: int | None = None,
) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if published is not None:
        conditions.append(_eq(Post.published, published))
    if author_id is not None:
        conditions.append(_eq(Post.author_id, author_id))
    return conditions


async def list_posts(
    session: AsyncSession,
    *,
    offset: int,
    limit: int,
    published: bool | None = None,
    author_id: int | None = None,
) -> tuple[list[PostRow], int]:
    """Return one newest-first page of posts and the total matching count."""
    conditions = build_post_filters(published=published, author_id=author_id)

    query = (
        _post_with_author()
        .where(*conditions)
        .order_by(
            _desc(Post.created_at),
            _desc(Post.id),
        )
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(query)
    rows = cast(list[PostRow], [tuple(row) for row in result.all()])

    count_result = await session.execute(
        select(func.count()).select_from(cast(Any, Post)).where(*conditions)
    )
    total = int(count_result.scalar_one() or 0)
    return rows, total


def build_search_filter(
    query: str | None,
    *,
    author: str | None = None,
    published: bool | None = None,
) -> list[ColumnElement[bool]]:
    term = (query or "").strip()
    if not term:
        raise ValidationFailure("Search query (q) is required")

    pattern = contains_pattern(term)
    conditions: list[ColumnElement[bool]] = [
        cast(
            ColumnElement[bool],
            or_(
                _ilike(Post.title, pattern),
                _ilike(Post.content, pattern),
                _ilike(User.username, pattern),
                _ilike(User.first_name, pattern),
                _ilike(User.last_name, pattern),
            ),
        )
    ]
    if published is not None:
        conditions.append(_eq(Post.published, published))
    author_term = (author or "").strip()
    if author_term:
        conditions.append(_ilike(User.username, contains_pattern(author_term)))
    return conditions


async def search_posts(
    session: AsyncSession,
    *,
    query: str | None,
    author: str | None = None,
    published: bool | None = None,
    sort_by: str | None = None,
    order: SortOrder = "desc",
) -> list[PostRow]:
    """Match posts by title, content or author name; sort by an allowed column."""
    conditions = build_search_filter(query, author=author, published=published)
    sort_column = resolve_sort_column(sort_by)
    direction = _asc if order == "asc" else _desc

    result = await session.execute(
        _post_with_author()
        .where(*conditions)
        .order_by(direction(sort_column), direction(Post.id))
    )
    return cast(list[PostRow], [tuple(row) for row in result.all()])
