"""Async engine and per-request session factory."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core import settings


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign key enforcement."""
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = dict(engine_kwargs.pop("connect_args", {}))
        connect_args.setdefault("check_same_thread", False)
        engine_kwargs["connect_args"] = connect_args

    engine = create_async_engine(database_url, **engine_kwargs)
    if is_sqlite:
        # Cascading deletes on engagement rows rely on this pragma.
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


async_engine = build_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_pre_ping=not settings.database_url.startswith("sqlite"),
)
AsyncSessionMaker = async_sessionmaker(async_engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionMaker() as session:
        yield session
