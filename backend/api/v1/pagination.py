"""Shared pagination constants, page metadata and response header helpers."""

from __future__ import annotations

from math import ceil

from fastapi import Response

from .schemas import ApiModel

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class PageInfo(ApiModel):
    current_page: int
    total_pages: int
    total_posts: int
    posts_per_page: int
    has_next_page: bool
    has_prev_page: bool


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_page_info(*, page: int, limit: int, total: int) -> PageInfo:
    """Describe ``page`` of a ``limit``-sized listing holding ``total`` items."""
    total_pages = ceil(total / limit) if limit > 0 else 0
    return PageInfo(
        current_page=page,
        total_pages=total_pages,
        total_posts=total,
        posts_per_page=limit,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def set_next_offset_header(
    response: Response,
    *,
    offset: int,
    limit: int,
    has_more: bool,
) -> None:
    if has_more:
        response.headers["X-Next-Offset"] = str(offset + limit)
