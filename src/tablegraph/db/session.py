"""
Database session management for TableGraph.

Provides async database sessions using SQLAlchemy 2.0 async features. The
engine is created on first use so importing the package never connects.
"""

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
from sqlalchemy.pool import NullPool

from tablegraph.core.config import Settings, settings
from tablegraph.core.logging import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def create_engine(config: Settings | None = None) -> AsyncEngine:
    """
    Create async database engine.

    Uses connection pooling for PostgreSQL and NullPool for tests and SQLite.
    """
    config = config or settings
    engine_kwargs: dict[str, Any] = {
        "echo": config.debug and config.environment == "development",
    }

    if config.is_sqlite or config.environment == "test":
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = config.db_pool_size
        engine_kwargs["max_overflow"] = config.db_max_overflow
        engine_kwargs["pool_timeout"] = config.db_pool_timeout
        engine_kwargs["pool_pre_ping"] = True

    return create_async_engine(config.database_url, **engine_kwargs)


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_engine()
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session factory."""
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _sessionmaker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that yields a database session.

    Commits when the request handler returns, rolls back if it raises.
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions.

    Usage:
        async with get_db_context() as db:
            ...
    """
    async with get_sessionmaker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(create_schema: bool = False) -> None:
    """
    Verify database connectivity.

    Args:
        create_schema: Also create missing tables (and, on PostgreSQL,
            install the bulk procedures). Intended for development; deployed
            databases get both from the Alembic migrations.
    """
    from tablegraph.db.base import Base
    from tablegraph.db.procedures import install_procedures, missing_procedures

    import tablegraph.models  # noqa: F401  registers mappers

    engine = get_engine()
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_schema:
                await conn.run_sync(Base.metadata.create_all)
                if conn.dialect.name == "postgresql":
                    await install_procedures(conn)
            elif conn.dialect.name == "postgresql":
                missing = await missing_procedures(conn)
                if missing:
                    logger.warning(
                        "Bulk procedures missing, bulk operations will run row by row",
                        extra={"procedures": missing},
                    )
        logger.info("Database connection established", extra={"dialect": engine.dialect.name})
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


async def close_db() -> None:
    """Dispose of the engine and its connections."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _sessionmaker = None
