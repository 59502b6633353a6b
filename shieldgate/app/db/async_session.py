"""Async database engine and session management for SQLAlchemy 2.0+.

PostgreSQL (asyncpg) is the production target and gives the durable stores
real row-level locks. SQLite (aiosqlite) is supported for tests and
single-node deployments; there every transaction starts with
``BEGIN IMMEDIATE`` so the database write lock serializes writers the way
``SELECT ... FOR UPDATE`` does on PostgreSQL.
"""

from typing import Iterable

from sqlalchemy import Table, event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from shieldgate.app.core.config import Settings
from shieldgate.app.core.logging import get_logger

logger = get_logger(__name__)


def _enable_sqlite_write_lock(engine: AsyncEngine) -> None:
    """Make pysqlite/aiosqlite emit ``BEGIN IMMEDIATE`` for every transaction.

    The driver's own implicit BEGIN is disabled first; see "Serializable
    isolation / Savepoints / Transactional DDL" in the SQLAlchemy SQLite
    dialect documentation.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_url(
    url: str,
    config: Settings | None = None,
) -> AsyncEngine:
    """Create an async engine for one of the supported dialects.

    Args:
        url: SQLAlchemy database URL (``postgresql+asyncpg://`` or
            ``sqlite+aiosqlite://``).
        config: Pool settings. Defaults are used when omitted.

    Returns:
        AsyncEngine instance
    """
    config = config or Settings()

    if "sqlite" in url.lower():
        engine = create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": config.db_sqlite_busy_timeout},
        )
        _enable_sqlite_write_lock(engine)
        logger.info("Created SQLite async engine with immediate transactions")
        return engine

    connect_args = {
        "command_timeout": config.db_command_timeout,
    }
    engine = create_async_engine(
        url,
        echo=False,
        pool_size=config.db_pool_size,
        max_overflow=config.db_max_overflow,
        pool_timeout=config.db_pool_timeout,
        pool_recycle=config.db_pool_recycle,
        pool_pre_ping=config.db_pool_pre_ping,
        connect_args=connect_args,
    )
    logger.info(
        f"Created PostgreSQL async engine (pool_size={config.db_pool_size}, "
        f"max_overflow={config.db_max_overflow}, "
        f"pool_timeout={config.db_pool_timeout}s)"
    )
    return engine


def create_engine_from_settings(config: Settings) -> AsyncEngine:
    return create_engine_from_url(config.database_url, config)


def get_async_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session maker used by the durable stores."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_async_db(engine: AsyncEngine, tables: Iterable[Table] | None = None) -> None:
    """Create tables if they do not exist yet.

    Args:
        engine: Target engine.
        tables: Restrict creation to these tables; all models when omitted.
    """
    from shieldgate.app.db.base import Base
    from shieldgate.app.db import models  # noqa: F401 - register models

    table_list = list(tables) if tables is not None else None
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=table_list, checkfirst=True)


async def close_async_engine(engine: AsyncEngine) -> None:
    """Dispose the engine and its pool. Safe to call more than once."""
    try:
        await engine.dispose()
        logger.debug("Async engine disposed successfully")
    except RuntimeError:
        # Event loop mismatch - connections already gone with their loop
        logger.debug("Engine dispose encountered RuntimeError (event loop mismatch)")
