"""
Async database engine and request-scoped sessions.

- SQLite (aiosqlite) for local development and tests, with WAL mode
- PostgreSQL (asyncpg) in production, with a pooled engine
- One session per request: checked out, committed or rolled back, always closed
"""

import logging
from typing import AsyncGenerator
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from gallery.core.config import config as settings

logger = logging.getLogger(__name__)


def _get_engine_options(database_url: str) -> dict:
    """
    Get engine options based on database type.
    SQLite requires special handling for async and concurrency.
    """
    options = {
        "echo": False,
        "future": True,
    }

    if database_url.startswith("sqlite"):
        # aiosqlite doesn't pool; in-memory databases must share one connection
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["poolclass"] = NullPool
    else:
        options["pool_size"] = 5
        options["max_overflow"] = 10
        options["pool_pre_ping"] = True

    return options


def configure_sqlite_connection(dbapi_connection, connection_record):
    """
    Configure SQLite connection for concurrent request handling.

    - WAL: readers don't block the single writer
    - busy_timeout: wait for the write lock instead of failing immediately
    - foreign_keys: enforce ON DELETE CASCADE from product to product_image
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine_for(database_url: str):
    """Create an async engine, registering SQLite pragmas where relevant."""
    new_engine = create_async_engine(database_url, **_get_engine_options(database_url))

    if database_url.startswith("sqlite"):
        # For aiosqlite, we need to use the sync_engine's pool events
        event.listen(new_engine.sync_engine, "connect", configure_sqlite_connection)

    return new_engine


database_url = settings.database_url

engine = create_engine_for(database_url)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,  # Manual control over flushing
)


async def get_db_util() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency for FastAPI.

    Transaction handling:
    - Services commit their own unit of work
    - Anything left pending is committed when the request succeeds
    - Rollback on any exception, connection always returned to the pool
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_database_connection() -> bool:
    """
    Verify database connection is working.
    Used by the health check endpoint.
    """
    try:
        async with AsyncSessionLocal() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False
