"""Centralized FastAPI dependencies for use with Depends()."""

from collections.abc import AsyncGenerator
from typing import Annotated

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from schemasync.config import settings
from schemasync.db.session import get_db_session
from schemasync.services.schema_diff import SchemaDiffer, SQLAlchemySchemaDumper
from schemasync.services.store import SQLStore, Store

_schema_differ = SchemaDiffer(SQLAlchemySchemaDumper(connect_timeout=settings.admin_connect_timeout))


def get_store(session: Annotated[AsyncSession, Depends(get_db_session)]) -> Store:
    """Return the store for the current request, bound to its database session."""
    return SQLStore(session)


def get_schema_differ() -> SchemaDiffer:
    """Return the application schema differ.

    Tests override this with a differ backed by ``InMemorySchemaDumper``.
    """
    return _schema_differ


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an HTTP client for VCS content requests made while handling one push."""
    async with httpx.AsyncClient(timeout=settings.vcs_request_timeout) as client:
        yield client


__all__ = [
    "get_db_session",
    "get_http_client",
    "get_schema_differ",
    "get_store",
]
