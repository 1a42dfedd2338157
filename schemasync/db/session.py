"""Request-scoped database session for the webhook routes."""

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from schemasync.db import engine as _engine

logger = structlog.get_logger()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session for a whole push notification.

    Issues and activities written while reconciling the push are committed
    together when the route returns, including when it returns a 500 for a
    partially failed push. An exception escaping the route rolls back.

    Raises:
        RuntimeError: If the session factory has not been initialized.
    """
    if _engine.async_session_factory is None:
        msg = "Database session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)

    async with _engine.async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("session_rolled_back")
            await session.rollback()
            raise
