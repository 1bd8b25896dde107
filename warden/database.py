"""Database engine, session management, and table creation."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import WardenConfig
from .models.base import Base

logger = logging.getLogger("warden.database")

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _apply_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Per-connection PRAGMAs: WAL lets reporting reads run beside access-log appends."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA synchronous=NORMAL")
    finally:
        cursor.close()


def get_engine(config: WardenConfig) -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        sqlite = _is_sqlite(config.database_url)
        _engine = create_async_engine(
            config.database_url,
            echo=config.debug,
            pool_pre_ping=True,
            connect_args={"timeout": 30} if sqlite else {},
        )
        if sqlite and ":memory:" not in config.database_url:
            event.listen(_engine.sync_engine, "connect", _apply_sqlite_pragmas)
    return _engine


def get_session_factory(config: WardenConfig) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(config), expire_on_commit=False)
    return _session_factory


async def create_tables(config: WardenConfig) -> None:
    """Create the access log and crawler range tables if missing."""
    engine = get_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready at %s", engine.url.render_as_string(hide_password=True))


async def close_engine() -> None:
    """Close the database engine."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
