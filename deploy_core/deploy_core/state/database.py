"""Engine and session handling for a node's history store.

Each node keeps its history in its own database.  SQLite (through
``aiosqlite``) is the default; PostgreSQL (through ``asyncpg``) is accepted
for nodes that share a managed database server, one schema per node.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = frozenset({"sqlite", "postgresql"})

# SQLite waits this long for a competing writer before failing.
SQLITE_BUSY_TIMEOUT_MS = 5000

_factories: dict[AsyncEngine, async_sessionmaker[AsyncSession]] = {}


def backend_name(database_url: str) -> str:
    """Return the backend (``sqlite`` or ``postgresql``) named by *database_url*.

    Raises
    ------
    ValueError
        For any other backend.
    """
    backend = make_url(database_url).get_backend_name()
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(f"Unsupported history database backend: {backend}")
    return backend


def _sqlite_engine(database_url: str) -> AsyncEngine:
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(database_url, connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn: object, _: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        # Readers must not block the history writer.
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

    return engine


def get_engine(database_url: str, pool_size: int = 5, max_overflow: int = 10) -> AsyncEngine:
    """Create the async engine backing a node's history.

    Parameters
    ----------
    database_url:
        ``sqlite+aiosqlite:///<path>`` or ``postgresql+asyncpg://...``.
    pool_size, max_overflow:
        Connection pool sizing; only used for PostgreSQL.
    """
    backend = backend_name(database_url)
    if backend == "sqlite":
        engine = _sqlite_engine(database_url)
    else:
        engine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
        )
    logger.info("History store on %s", make_url(database_url).render_as_string(hide_password=True))
    return engine


async def create_tables(engine: AsyncEngine) -> None:
    """Create the history tables if they do not exist yet."""
    from deploy_core.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("History tables ready")


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    factory = _factories.get(engine)
    if factory is None:
        factory = _factories[engine] = async_sessionmaker(engine, expire_on_commit=False)

    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        await session.commit()


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close every pooled connection of *engine*."""
    _factories.pop(engine, None)
    await engine.dispose()
