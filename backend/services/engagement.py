"""Like, save, share and read relations between users and posts.

Like and save are toggles: every call flips the caller's state. Share and read
are records: the first call creates the row and later calls leave it in place
(read refreshes its timestamp). In both cases the ``(user_id, post_id)``
primary key is the only guard against duplicates, so a unique violation on
insert means another request created the row first and is reported as the
active state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, cast

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement
from sqlmodel import SQLModel

from db.errors import is_unique_violation
from models import Like, PostRead, SavedPost, SharedPost
from .post_policy import require_positive_id, require_post_exists, require_user_exists

logger = logging.getLogger(__name__)

MISSING_IDS_DETAIL = "postId and userId are required"


class EngagementKind(str, Enum):
    LIKE = "like"
    SAVE = "save"
    SHARE = "share"
    READ = "read"


class EngagementMode(str, Enum):
    TOGGLE = "toggle"
    RECORD = "record"


@dataclass(frozen=True)
class EngagementPolicy:
    model: type[SQLModel]
    mode: EngagementMode
    touch_on_repeat: bool = False


ENGAGEMENT_POLICIES: dict[EngagementKind, EngagementPolicy] = {
    EngagementKind.LIKE: EngagementPolicy(Like, EngagementMode.TOGGLE),
    EngagementKind.SAVE: EngagementPolicy(SavedPost, EngagementMode.TOGGLE),
    EngagementKind.SHARE: EngagementPolicy(SharedPost, EngagementMode.RECORD),
    EngagementKind.READ: EngagementPolicy(
        PostRead,
        EngagementMode.RECORD,
        touch_on_repeat=True,
    ),
}


@dataclass(frozen=True)
class EngagementState:
    kind: EngagementKind
    active: bool
    total_count: int


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _pair_filter(model: type[SQLModel], user_id: int, post_id: int) -> tuple[ColumnElement[bool], ...]:
    entity = cast(Any, model)
    return (_eq(entity.user_id, user_id), _eq(entity.post_id, post_id))


def _policy(kind: EngagementKind, mode: EngagementMode | None = None) -> EngagementPolicy:
    policy = ENGAGEMENT_POLICIES[kind]
    if mode is not None and policy.mode is not mode:
        raise ValueError(f"{kind.value} engagements use {policy.mode.value} semantics")
    return policy


async def count_engagements(
    session: AsyncSession,
    kind: EngagementKind,
    post_id: int,
) -> int:
    entity = cast(Any, _policy(kind).model)
    result = await session.execute(
        select(func.count()).select_from(entity).where(_eq(entity.post_id, post_id))
    )
    return int(result.scalar_one() or 0)


async def has_engagement(
    session: AsyncSession,
    kind: EngagementKind,
    *,
    user_id: int,
    post_id: int,
) -> bool:
    model = _policy(kind).model
    entity = cast(Any, model)
    result = await session.execute(
        select(entity.post_id).where(*_pair_filter(model, user_id, post_id)).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def _require_participants(
    session: AsyncSession,
    *,
    user_id: int | None,
    post_id: int | None,
) -> tuple[int, int]:
    valid_post_id = require_positive_id(post_id, detail=MISSING_IDS_DETAIL)
    valid_user_id = require_positive_id(user_id, detail=MISSING_IDS_DETAIL)
    await require_post_exists(session, valid_post_id)
    await require_user_exists(session, valid_user_id)
    return valid_user_id, valid_post_id


async def _insert_engagement(
    session: AsyncSession,
    model: type[SQLModel],
    *,
    user_id: int,
    post_id: int,
) -> bool:
    """Insert the row and return False when it already existed."""
    session.add(cast(Any, model)(user_id=user_id, post_id=post_id))
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            raise
        logger.info(
            "Concurrent %s insert detected; treating as already active",
            model.__tablename__,
            extra={"user_id": user_id, "post_id": post_id},
        )
        return False
    return True


async def _touch_engagement(
    session: AsyncSession,
    model: type[SQLModel],
    *,
    user_id: int,
    post_id: int,
) -> None:
    entity = cast(Any, model)
    await session.execute(
        update(entity)
        .where(*_pair_filter(model, user_id, post_id))
        .values(created_at=datetime.now(timezone.utc))
    )
    await session.commit()


async def toggle_engagement(
    session: AsyncSession,
    kind: EngagementKind,
    *,
    user_id: int | None,
    post_id: int | None,
) -> EngagementState:
    """Flip the caller's like/save state and return it with a fresh count."""
    policy = _policy(kind, EngagementMode.TOGGLE)
    user_id, post_id = await _require_participants(
        session,
        user_id=user_id,
        post_id=post_id,
    )

    if await has_engagement(session, kind, user_id=user_id, post_id=post_id):
        entity = cast(Any, policy.model)
        # A concurrent toggle may already have removed the row; either way it is gone.
        await session.execute(
            delete(entity).where(*_pair_filter(policy.model, user_id, post_id))
        )
        await session.commit()
        active = False
    else:
        inserted = await _insert_engagement(
            session,
            policy.model,
            user_id=user_id,
            post_id=post_id,
        )
        active = inserted or await has_engagement(
            session,
            kind,
            user_id=user_id,
            post_id=post_id,
        )

    total_count = await count_engagements(session, kind, post_id)
    return EngagementState(kind=kind, active=active, total_count=total_count)


async def record_engagement(
    session: AsyncSession,
    kind: EngagementKind,
    *,
    user_id: int | None,
    post_id: int | None,
) -> EngagementState:
    """Create the share/read row once; repeat calls keep it (reads are re-stamped)."""
    policy = _policy(kind, EngagementMode.RECORD)
    user_id, post_id = await _require_participants(
        session,
        user_id=user_id,
        post_id=post_id,
    )

    created = False
    if not await has_engagement(session, kind, user_id=user_id, post_id=post_id):
        created = await _insert_engagement(
            session,
            policy.model,
            user_id=user_id,
            post_id=post_id,
        )
    if not created and policy.touch_on_repeat:
        await _touch_engagement(
            session,
            policy.model,
            user_id=user_id,
            post_id=post_id,
        )

    total_count = await count_engagements(session, kind, post_id)
    return EngagementState(kind=kind, active=True, total_count=total_count)


async def get_engagement_status(
    session: AsyncSession,
    kind: EngagementKind,
    *,
    post_id: int,
    user_id: int | None = None,
) -> EngagementState:
    """Read-only view of the count and, when a user is given, their state."""
    post_id = require_positive_id(post_id, detail="Valid postId is required")
    if user_id is not None:
        user_id = require_positive_id(user_id, detail="userId must be a positive integer")
    await require_post_exists(session, post_id)

    active = False
    if user_id is not None:
        active = await has_engagement(session, kind, user_id=user_id, post_id=post_id)
    total_count = await count_engagements(session, kind, post_id)
    return EngagementState(kind=kind, active=active, total_count=total_count)


__all__ = [
    "ENGAGEMENT_POLICIES",
    "EngagementKind",
    "EngagementMode",
    "EngagementPolicy",
    "EngagementState",
    "count_engagements",
    "get_engagement_status",
    "has_engagement",
    "record_engagement",
    "toggle_engagement",
]
