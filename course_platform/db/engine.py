"""Async SQLAlchemy engine and session factory.

PostgreSQL (``postgresql+asyncpg://``) in production, SQLite via aiosqlite
for local development and tests.  Both go through the same engine, the
same session factory and the same repositories.

One request = one AsyncSession = one transaction.  ``get_async_session``
commits when the endpoint returns and rolls back when anything raises, so
multi-step writes (lesson completion, course creation) are all-or-nothing.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Session
from sqlalchemy.pool import StaticPool

from course_platform.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an engine for *url*, applying the SQLite-specific setup.

    SQLite needs three adjustments to behave like the production database:
    foreign keys must be switched on per connection (ON DELETE CASCADE),
    the driver's implicit transaction handling is replaced with an explicit
    BEGIN IMMEDIATE, and in-memory databases share one connection.

    BEGIN IMMEDIATE takes the write lock up front.  Two writers then queue
    on the busy timeout instead of both upgrading a shared lock, which
    SQLite resolves by failing one of them with "database is locked".
    The second writer starts after the first commits and sees its rows,
    the way ``FOR UPDATE`` serializes them on PostgreSQL.
    """
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_size=5, max_overflow=10)

    kwargs: dict = {"echo": echo}
    if _is_memory_sqlite(url):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_async_engine(url, **kwargs)

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(SETTINGS.database_url, echo=SETTINGS.is_dev)
async_session_factory = build_session_factory(engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a request-scoped async session.

    Commits on success, rolls back on exception.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def on_transaction_end(
    session: AsyncSession,
    *,
    committed: Callable[[], None] | None = None,
    rolled_back: Callable[[], None] | None = None,
) -> None:
    """Run one callback when the outermost transaction of *session* ends.

    *committed* runs after a successful COMMIT, *rolled_back* after a
    ROLLBACK.  Savepoints are ignored and only the first outcome counts.
    Use it for side effects outside the database, such as stored files,
    that must follow the rows they belong to.
    """
    fired = False

    def _fire(sync_session: Session, callback: Callable[[], None] | None) -> None:
        nonlocal fired
        if fired or sync_session.in_nested_transaction():
            return
        fired = True
        if callback is not None:
            callback()

    sync_session = session.sync_session
    event.listen(sync_session, "after_commit", lambda s: _fire(s, committed))
    event.listen(sync_session, "after_rollback", lambda s: _fire(s, rolled_back))


async def create_all(bind: AsyncEngine) -> None:
    # Import table module so Base.metadata sees all table definitions.
    import course_platform.db.tables  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine.

    Call from FastAPI's lifespan context manager.
    """
    logger.info("Database engine created: %s", engine.url.render_as_string())
    if SETTINGS.db_create_all:
        await create_all(engine)
        logger.info("Database schema ensured (DB_CREATE_ALL)")
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
