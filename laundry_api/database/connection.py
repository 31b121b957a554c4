"""
Database Connection Management

One async engine per process, created at startup and disposed at shutdown.
PostgreSQL (asyncpg) is the production backend; SQLite (aiosqlite) serves
local development and the test suite.
"""

from contextlib import asynccontextmanager
import time
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from laundry_api.config import get_settings
from laundry_api.database.models import Base

logger = structlog.get_logger(__name__)
settings = get_settings()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

NOT_INITIALIZED = "Database not initialized. Call init_database() first."


def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for the backend behind ``url``."""
    options: Dict[str, Any] = {"echo": settings.database.echo}
    if make_url(url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.pool_size // 2,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    return options


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Routes read attributes after commit, so instances must not expire
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(url: Optional[str] = None, create_tables: bool = False) -> AsyncEngine:
    """
    Create the engine and check that the database answers.

    Args:
        url: Override the configured database URL
        create_tables: Create missing tables (development and seeding)
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    url = url or settings.database.async_url
    engine = create_async_engine(url, **engine_options(url))

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e), error_type=type(e).__name__)
        await engine.dispose()
        raise

    _engine = engine
    _session_factory = make_session_factory(engine)
    logger.info(
        "Database connection established",
        backend=engine.url.get_backend_name(),
        database=engine.url.database,
        tables_created=create_tables,
    )
    return _engine


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError(NOT_INITIALIZED)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory, used by routes that fetch in parallel on separate sessions."""
    if _session_factory is None:
        raise RuntimeError(NOT_INITIALIZED)
    return _session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Session scoped to one unit of work: committed when the block exits
    normally, rolled back when it raises.

    Example:
        async with get_db() as db:
            await seed_marketplace(db)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
            await session.rollback()
            raise


async def get_db_dependency() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, committed after the handler returns."""
    async with get_db() as session:
        yield session


async def check_database_health() -> Dict[str, Any]:
    """Round-trip latency of a trivial query, or the error that prevented it."""
    if _engine is None:
        return {"status": "unhealthy", "error": NOT_INITIALIZED}

    start = time.perf_counter()
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database health check failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "backend": _engine.url.get_backend_name(),
        "latency_ms": round((time.perf_counter() - start) * 1000, 2),
    }
