"""Async SQLAlchemy engine and session factory helpers."""

from __future__ import annotations

from sqlalchemy import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

_IN_MEMORY_DATABASES = {None, "", ":memory:"}


def create_database_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the provided database URL.

    An in-memory SQLite database lives only as long as its connection, so the
    engine keeps exactly one pooled connection and sessions wait their turn.
    """

    if is_in_memory_sqlite(database_url):
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
        )
    return create_async_engine(database_url, echo=echo)


def create_session_factory(database: str | AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a reusable async session factory for a database URL or engine."""

    engine = database if isinstance(database, AsyncEngine) else create_database_engine(database)
    return async_sessionmaker(engine, expire_on_commit=False)


def is_in_memory_sqlite(database_url: str) -> bool:
    """Return whether the URL points at a private in-memory SQLite database."""

    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in _IN_MEMORY_DATABASES
