"""Pytest configuration.

Settings come from the environment, so minimal test defaults are set here
before anything from ``philtree`` is imported.
"""

import os

os.environ.setdefault("APP_NAME", "PhilTree")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("API_PREFIX", "/api/v1")
# pydantic-settings parses List[str] from env/.env as JSON; force a safe value
# to keep tests import-safe regardless of local developer .env contents.
os.environ["CORS_ORIGINS"] = "[]"
os.environ.setdefault("QDRANT_LOCATION", ":memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# For Postgres-backed integration tests we want deterministic credentials.
_run_pg = os.environ.get("RUN_POSTGRES_TESTS", "").lower() in {"1", "true", "yes"}
_pg_host = os.environ.get("POSTGRES_TEST_HOST") or "localhost"
_pg_port = os.environ.get("POSTGRES_TEST_PORT") or "5432"
_pg_user = os.environ.get("POSTGRES_TEST_USER") or "philtree"
_pg_password = os.environ.get("POSTGRES_TEST_PASSWORD") or "philtree_dev_password"
_pg_db = os.environ.get("POSTGRES_TEST_BASE_DB") or "philtree"
_test_db_name = os.environ.get("POSTGRES_TEST_DB") or f"{_pg_db}_test"

os.environ.setdefault(
    "TEST_DATABASE_URL",
    f"postgresql+asyncpg://{_pg_user}:{_pg_password}@{_pg_host}:{_pg_port}/{_test_db_name}",
)
os.environ.setdefault(
    "TEST_DATABASE_URL_SYNC",
    f"postgresql+psycopg://{_pg_user}:{_pg_password}@{_pg_host}:{_pg_port}/{_test_db_name}",
)

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from urllib.parse import urlparse

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from philtree.api.deps import get_branch_engine, get_engine_factory
from philtree.core.database import get_db
from philtree.main import app
from philtree.models import Base

from tests.fakes import GraphHarness

TEST_DATABASE_URL = os.environ["TEST_DATABASE_URL"]


async def _can_connect_to_postgres(url: str, timeout_seconds: float = 1.0) -> bool:
    try:
        parsed = urlparse(url.replace("postgresql+asyncpg://", "postgresql://", 1))
        host = parsed.hostname or "localhost"
        port = parsed.port or 5432

        conn = asyncio.open_connection(host, port)
        reader, writer = await asyncio.wait_for(conn, timeout=timeout_seconds)
        writer.close()
        try:
            await writer.wait_closed()
        except Exception:
            pass
        return True
    except Exception:
        return False


async def _require_postgres_or_skip(url: str) -> None:
    if await _can_connect_to_postgres(url):
        return

    message = (
        "Postgres is not reachable for integration tests. "
        "Start one or point POSTGRES_TEST_* / TEST_DATABASE_URL at a running instance."
    )

    if _run_pg:
        pytest.fail(f"RUN_POSTGRES_TESTS=1 but {message}")

    pytest.skip(message)


async def _recreate_test_database(test_db_url: str) -> None:
    """Drop and create the test database so every run starts empty."""
    import asyncpg

    parsed = urlparse(test_db_url.replace("postgresql+asyncpg://", "postgresql://", 1))
    host = parsed.hostname or "localhost"
    port = parsed.port or 5432
    user = parsed.username or "philtree"
    password = parsed.password or ""
    test_db = (parsed.path or "/").lstrip("/")

    admin_db = os.environ.get("POSTGRES_ADMIN_DB") or "postgres"
    conn = await asyncpg.connect(f"postgresql://{user}:{password}@{host}:{port}/{admin_db}")
    try:
        await conn.execute(
            "SELECT pg_terminate_backend(pid) FROM pg_stat_activity WHERE datname = $1 AND pid <> pg_backend_pid()",
            test_db,
        )
        await conn.execute(f'DROP DATABASE IF EXISTS "{test_db}"')
        await conn.execute(f'CREATE DATABASE "{test_db}"')
    finally:
        await conn.close()


@pytest_asyncio.fixture(scope="function")
async def pg_engine():
    """Fresh Postgres database with all tables; skipped when Postgres is unreachable."""
    await _require_postgres_or_skip(TEST_DATABASE_URL)
    await _recreate_test_database(TEST_DATABASE_URL)

    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine):
    return async_sessionmaker(pg_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def graph() -> GraphHarness:
    """Branch engine over in-memory stores."""
    return GraphHarness()


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a mocked database session."""
    mock_session = AsyncMock(spec=AsyncSession)

    async def override_get_db():
        yield mock_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def graph_client(graph: GraphHarness) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose branch engine runs on in-memory stores."""

    @asynccontextmanager
    async def factory():
        yield graph.engine

    app.dependency_overrides[get_branch_engine] = lambda: graph.engine
    app.dependency_overrides[get_engine_factory] = lambda: factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
