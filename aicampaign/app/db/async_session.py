"""Async database session management for SQLAlchemy 2.0+.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for local runs and
tests.
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from aicampaign.app.core.config import settings
from aicampaign.app.core.logging import get_logger

logger = get_logger(__name__)

# Bound lazily to the default engine
_AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


@lru_cache(maxsize=1)
def get_async_engine(database_url: str | None = None) -> AsyncEngine:
    """Engine for ``database_url`` (default: settings), built once and cached."""
    url = database_url or settings.database_url

    if "sqlite" in url.lower():
        if ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty DB
            engine = create_async_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_async_engine(url)
        logger.info("Created SQLite async engine")
        return engine

    engine = create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        connect_args={"command_timeout": settings.db_command_timeout},
    )
    logger.info(
        f"Created PostgreSQL async engine (pool_size={settings.db_pool_size}, "
        f"max_overflow={settings.db_max_overflow})"
    )
    return engine


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session maker whose objects stay usable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_async_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the global async session maker."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = make_session_maker(get_async_engine())
    return _AsyncSessionLocal


async def init_async_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables. Called during application startup."""
    from aicampaign.app.db.base import Base
    from aicampaign.app.db import models  # noqa: F401 - import to register models

    engine = engine or get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_async_engine() -> None:
    """Dispose the async engine on application shutdown."""
    global _AsyncSessionLocal

    engine = get_async_engine()
    try:
        await engine.dispose()
        logger.debug("Async engine disposed successfully")
    except RuntimeError:
        # Event loop mismatch in test scenarios; connections are gone already
        logger.debug("Engine dispose encountered RuntimeError (event loop mismatch)")

    get_async_engine.cache_clear()
    _AsyncSessionLocal = None
