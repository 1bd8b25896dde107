"""Integration test fixtures: in-memory app, async client, admin key."""

import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

ADMIN_KEY = "integration-admin-key"

TEST_ENV = {
    "DEBUG": "true",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "ADMIN_API_KEY": ADMIN_KEY,
    "RATE_LIMIT": "3",
}

import warden.database as db_mod
import warden.dependencies as dep_mod


def _reset_singletons():
    """Reset all module-level singletons so each test session starts clean."""
    db_mod._engine = None
    db_mod._session_factory = None
    dep_mod._config_instance = None
    dep_mod._protection_service = None
    dep_mod._retention_manager = None


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def test_app():
    """Create test app with in-memory database (shared via StaticPool).

    The single shared connection does not tolerate overlapping appends;
    flush the protection service between gated requests.
    """
    # Force test config BEFORE the app is imported
    saved_env = {key: os.environ.get(key) for key in TEST_ENV}
    os.environ.update(TEST_ENV)
    _reset_singletons()

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Inject into database module BEFORE app import
    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, expire_on_commit=False)

    dep_mod.get_app_config()

    from warden.main import app
    from warden.models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield app

    await dep_mod.get_protection_service().flush()
    await engine.dispose()
    _reset_singletons()
    for key, value in saved_env.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest_asyncio.fixture(loop_scope="session")
async def client(test_app):
    """Async HTTP client for testing."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}
