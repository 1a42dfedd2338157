"""Shared test fixtures: in-memory store, mocked VCS and the FastAPI test client."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from schemasync.db.session import get_db_session
from schemasync.dependencies import get_http_client, get_schema_differ, get_store
from schemasync.main import app
from schemasync.services.schema_diff import InMemorySchemaDumper, SchemaDiffer
from schemasync.services.store import InMemoryStore


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mock async database session.

    The mock's execute method returns successfully, simulating a healthy DB.
    """
    session = AsyncMock(spec=AsyncSession)
    session.execute.return_value = None
    return session


@pytest.fixture
def store() -> InMemoryStore:
    """Create an empty in-memory store; tests seed repositories and databases."""
    return InMemoryStore()


@pytest.fixture
def vcs_files() -> dict[str, str]:
    """Repository file contents served by the mocked VCS, keyed by path."""
    return {}


@pytest.fixture
def vcs_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def schema_dumper() -> InMemorySchemaDumper:
    """Live schemas returned for databases, keyed by database id."""
    return InMemorySchemaDumper()


@pytest.fixture
def schema_differ(schema_dumper: InMemorySchemaDumper) -> SchemaDiffer:
    return SchemaDiffer(schema_dumper)


@pytest.fixture
async def http_client(
    vcs_files: dict[str, str], vcs_requests: list[httpx.Request]
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an httpx client whose transport serves ``vcs_files`` like GitHub and GitLab."""

    def handler(request: httpx.Request) -> httpx.Response:
        vcs_requests.append(request)
        path = request.url.path.removesuffix("/raw")
        for name, content in vcs_files.items():
            if path.endswith(f"/{name}"):
                return httpx.Response(200, text=content)
        return httpx.Response(404, json={"message": "Not Found"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        yield client


@pytest.fixture
async def client(
    mock_db_session: AsyncMock,
    store: InMemoryStore,
    http_client: httpx.AsyncClient,
    schema_differ: SchemaDiffer,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with dependencies overridden.

    Uses the mock session so tests don't require a running database, the
    in-memory store for inspecting created issues and activities, and the
    mocked VCS transport for file contents.
    """

    async def _override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db_session  # type: ignore[misc]

    async def _override_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
        yield http_client

    app.dependency_overrides[get_db_session] = _override_db_session
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_http_client] = _override_http_client
    app.dependency_overrides[get_schema_differ] = lambda: schema_differ
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
