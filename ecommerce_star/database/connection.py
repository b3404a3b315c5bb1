"""
Database Connection Management

Async database engine for the star schema store with SQLAlchemy 2.0.
Implements engine setup, session scoping, and graceful shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlalchemy import text

from ecommerce_star.config import get_settings

logger = structlog.get_logger(__name__)

# Global engine and session factory
_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine.

    Args:
        url: Async database URL; defaults to the configured database

    Returns:
        AsyncEngine: The initialized database engine
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = get_settings()

    # AsyncPG handles its own connection pooling internally
    _engine = create_async_engine(
        url or settings.database.async_url,
        echo=settings.database.echo,
        pool_pre_ping=True,
        poolclass=NullPool,
    )

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    # Verify connection
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established", url=_engine.url.render_as_string(hide_password=True))
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        raise

    return _engine


async def close_database() -> None:
    """Dispose of the engine and its connections"""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    """
    Get the database engine.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session.

    Commits on success and rolls back on error.

    Example:
        async with get_db() as db:
            result = await db.execute(query)
    """
    if _async_session_factory is None:
        logger.error("Database not initialized when get_db() called")
        raise RuntimeError("Database not initialized. Call init_database() first.")

    session = _async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        await session.rollback()
        raise
    finally:
        await session.close()
