"""
Async SQLAlchemy engine and session management.

The poll data lives in a single local SQLite file opened in WAL mode, so
concurrent readers never block the writer.
"""

from typing import Any

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from db.base import Base

logger = structlog.get_logger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 15


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine, applying SQLite pragmas on every new connection."""
    is_sqlite = database_url.startswith("sqlite")
    connect_args: dict[str, Any] = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS} if is_sqlite else {}

    engine = create_async_engine(database_url, echo=echo, connect_args=connect_args)

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet. Safe to run on every start."""
    import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("database_closed")
