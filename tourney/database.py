"""Async database connection using SQLAlchemy (supports SQLite and PostgreSQL)."""

import asyncio
import logging
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import InterfaceError, InvalidRequestError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from tourney.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def to_async_url(url: str) -> str:
    """Convert database URL to async format."""
    # SQLite
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    # PostgreSQL
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, foreign_keys: bool = True) -> AsyncEngine:
    """Create an async engine with per-dialect pool settings."""
    url = to_async_url(url)
    engine_kwargs = {
        "echo": False,
    }

    if url.startswith("sqlite"):
        # SQLite-specific settings
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine_kwargs["poolclass"] = StaticPool
    else:
        # PostgreSQL-specific settings
        engine_kwargs["pool_pre_ping"] = True  # Verify connection before checkout
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 20
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_reset_on_return"] = "rollback"

    engine = create_async_engine(url, **engine_kwargs)

    if url.startswith("sqlite") and foreign_keys:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    return engine


def build_session_maker(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


DATABASE_URL = to_async_url(settings.DATABASE_URL)

async_engine = build_engine(DATABASE_URL, foreign_keys=settings.DATABASE_FOREIGN_KEYS)

AsyncSessionLocal = build_session_maker(async_engine)

# Alias for background tasks and scripts that need to create their own sessions
async_session_maker = AsyncSessionLocal


async def init_db(engine: AsyncEngine = async_engine) -> None:
    """Initialize database tables."""
    # Register table metadata before create_all
    import tourney.models  # noqa: F401

    logger.info("Initializing database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables created successfully.")


async def close_db(engine: AsyncEngine = async_engine) -> None:
    """Close database connections."""
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed.")


@asynccontextmanager
async def get_session_with_retry(
    max_retries: int = 3,
    retry_delay: float = 1.0,
    session_maker: sessionmaker = AsyncSessionLocal,
):
    """
    Context manager that provides a session with automatic retry on connection errors.

    Used by the operator CLI, which may start against a database that is still
    waking up.

    IMPORTANT: Retries only happen on session CREATION failure. If a connection drops
    DURING execution, the exception propagates to the caller.
    """
    last_error = None
    current_delay = retry_delay
    session = None

    for attempt in range(max_retries):
        try:
            session = session_maker()
            # Test the connection is alive before yielding
            await session.connection()
            break
        except (InterfaceError, OperationalError, InvalidRequestError) as e:
            last_error = e
            if session is not None:
                await session.close()
                session = None

            if attempt < max_retries - 1:
                logger.warning(
                    f"Database connection error (attempt {attempt + 1}/{max_retries}): {e}. "
                    f"Retrying in {current_delay}s..."
                )
                await asyncio.sleep(current_delay)
                current_delay *= 2  # Exponential backoff
                continue
            raise

    if session is None:
        if last_error:
            raise last_error
        raise RuntimeError("Failed to create database session after retries")

    try:
        yield session
    finally:
        await session.close()
