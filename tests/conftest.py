"""Shared test fixtures."""

import os
import tempfile

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Keep test runs from writing log files into the working tree
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "warden-test-logs"))

from warden.config import WardenConfig
from warden.models.base import Base


@pytest_asyncio.fixture
async def db_session_factory():
    """Async session factory over a fresh in-memory database with all tables.

    StaticPool shares one connection between sessions, so overlapping
    fire-and-forget appends can clobber each other. Tests that send several
    gated requests await ``service.flush()`` after each one.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def make_config():
    """Build a WardenConfig without reading .env, overriding selected fields."""
    def _make(**overrides):
        return WardenConfig(_env_file=None, **overrides)
    return _make


GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"
BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def googlebot_ua():
    return GOOGLEBOT_UA


@pytest.fixture
def browser_ua():
    return BROWSER_UA
