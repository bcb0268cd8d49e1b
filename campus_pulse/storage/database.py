"""
Database connection and session management.

This module provides:
- Async SQLAlchemy engine configuration
- Session factory shared by workers, CLI and tests
- Schema helpers for tests and quick local setup
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from campus_pulse.core.config import settings

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


# =============================================================================
# Engine Configuration
# =============================================================================


def create_engine() -> AsyncEngine:
    """
    Create async SQLAlchemy engine.

    Uses a bounded connection pool outside development and NullPool in
    development so short-lived worker loops never share connections.
    """
    engine_kwargs: dict[str, Any] = {
        "echo": settings.SQL_ECHO,
        "pool_pre_ping": True,
    }
    if settings.is_development:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        engine_kwargs["pool_timeout"] = settings.DATABASE_POOL_TIMEOUT_SECONDS
    return create_async_engine(settings.DATABASE_URL, **engine_kwargs)


engine = create_engine()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# =============================================================================
# Sessions
# =============================================================================


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session that commits on success and rolls back on error.

    Usage:
        async for session in get_session():
            coordinator = PipelineCoordinator(session=session)
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# Utility Functions
# =============================================================================


async def init_db() -> None:
    """
    Create all tables from model metadata.

    Production schemas come from Alembic migrations; this is for tests.
    """
    from campus_pulse.storage.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    """Drop all tables. Test use only."""
    from campus_pulse.storage.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
