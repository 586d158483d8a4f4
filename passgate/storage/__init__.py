"""Database connection and session management.

Provides async SQLAlchemy engine, session factory, and connection utilities.
PostgreSQL (asyncpg) in production; SQLite (aiosqlite) is supported for
local development and tests.

Thread-safety: All singleton access is protected by threading.RLock to prevent
race conditions during concurrent initialization.  RLock (reentrant) is
required because get_session_factory() calls get_engine() while holding
the lock.
"""

import threading
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from passgate.settings import Settings, get_settings

# Module-level engine and session factory (initialized lazily)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None
_init_lock = threading.RLock()


def _engine_options(settings: Settings) -> dict[str, Any]:
    """Pool options for the configured backend.

    SQLite pools do not accept sizing arguments.
    """
    if settings.database_url.startswith("sqlite"):
        return {"echo": settings.debug}
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_recycle": settings.database_pool_recycle,
        "pool_pre_ping": True,
        "echo": settings.debug,
    }


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine.

    Thread-safe: Uses double-checked locking to prevent concurrent
    engine creation in multi-threaded environments (e.g., uvicorn workers).

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured AsyncEngine instance.
    """
    global _engine

    if _engine is None:
        with _init_lock:
            if _engine is None:
                settings = settings or get_settings()
                _engine = create_async_engine(settings.database_url, **_engine_options(settings))

    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory.

    Args:
        settings: Optional settings override. Uses get_settings() if not provided.

    Returns:
        Configured async_sessionmaker instance.
    """
    global _session_factory

    if _session_factory is None:
        with _init_lock:
            if _session_factory is None:
                engine = get_engine(settings)
                _session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                    autoflush=False,
                )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session with automatic cleanup.

    Usage:
        async with get_session() as session:
            result = await session.execute(query)

    Yields:
        AsyncSession instance that is automatically closed.
    """
    factory = get_session_factory()
    session = factory()
    try:
        yield session
    finally:
        await session.close()


@asynccontextmanager
async def get_committing_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a session that auto-commits on successful exit.

    On exception the session is closed without committing, so the
    pending transaction is rolled back.

    Usage:
        async with get_committing_session() as session:
            deleted = await ChallengeRepository(session).delete_expired(now)
            # commit happens automatically on exit
    """
    async with get_session() as session:
        yield session
        await session.commit()


async def init_db() -> None:
    """Initialize database connection pool.

    Call this at application startup to eagerly initialize the connection pool.
    """
    engine = get_engine()
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connections.

    Thread-safe: Acquires lock before modifying singletons.
    """
    global _engine, _session_factory

    with _init_lock:
        if _engine is not None:
            await _engine.dispose()
            _engine = None
            _session_factory = None


# Public API
__all__ = [
    "close_db",
    "get_committing_session",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
]
