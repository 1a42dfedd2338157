"""Async database engines: the application engine and scoped admin engines."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_engine(database_url: str) -> None:
    """Create the async engine and session factory.

    Args:
        database_url: PostgreSQL connection string using asyncpg driver.
    """
    global engine, async_session_factory  # noqa: PLW0603

    engine = create_async_engine(
        database_url,
        pool_size=5,
        max_overflow=2,
        pool_pre_ping=True,
        echo=False,
    )

    async_session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def dispose_engine() -> None:
    """Dispose the async engine, closing all connections."""
    global engine, async_session_factory  # noqa: PLW0603

    if engine is not None:
        await engine.dispose()
        engine = None
        async_session_factory = None


@asynccontextmanager
async def admin_engine(url: URL, *, connect_args: dict | None = None) -> AsyncIterator[AsyncEngine]:
    """Yield an unpooled engine for one administrative task against a target database.

    The engine is disposed on every exit path, so a failing dump or diff never
    leaves a connection behind.
    """
    admin = create_async_engine(url, poolclass=NullPool, connect_args=connect_args or {})
    try:
        yield admin
    finally:
        await admin.dispose()
