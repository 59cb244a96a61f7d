"""
Database connection and session management.

The engine and session factory are created once by the application factory
(see main.create_app) and kept on ``app.state``; request handlers receive a
session through the ``get_session`` dependency instead of a module global.
"""
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy import event, text
from models import Base
import logging

logger = logging.getLogger(__name__)


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine(database_url: str) -> AsyncEngine:
    """
    Create the async engine for the configured database.
    SQLite goes through aiosqlite, PostgreSQL through asyncpg.
    """
    if is_sqlite(database_url):
        engine = create_async_engine(
            database_url,
            echo=False,
            connect_args={
                "check_same_thread": False,  # SQLite-specific: allow multi-threaded access
                "timeout": 30.0,  # Increase timeout for better reliability
            },
            pool_pre_ping=True,  # Verify connections before using
            pool_size=1,  # Use single connection for SQLite to avoid isolation issues
            max_overflow=0,
        )

        # Enable WAL mode for SQLite (Write-Ahead Logging)
        # Foreign keys must be switched on per connection for ON DELETE CASCADE
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable WAL mode, foreign keys and other SQLite optimizations."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()
            logger.debug("SQLite WAL mode enabled and optimizations applied")

        return engine

    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create the async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine):
    """
    Initialize database tables.
    Automatically creates all tables defined in models if they don't exist.
    This runs on application startup and is safe to run multiple times.
    """
    logger.info("Initializing database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name == "sqlite":
            # Checkpoint WAL to ensure everything is written
            await conn.execute(text("PRAGMA wal_checkpoint(TRUNCATE)"))
    logger.info("Database tables initialized successfully (created if not existed)")


async def close_db(engine: AsyncEngine):
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connection closed")


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency yielding one session per request.
    The session is closed (and any open transaction rolled back) afterwards.
    """
    session_maker: async_sessionmaker = request.app.state.session_maker
    async with session_maker() as session:
        yield session
