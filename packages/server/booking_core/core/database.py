"""
Database connection and session management.

The booking admission check runs inside one write transaction. On PostgreSQL
the resource row is locked with ``SELECT ... FOR UPDATE``; SQLite has no row
locks, so every transaction there is opened with ``BEGIN IMMEDIATE``, which
serializes writers on the database lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog
from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

from booking_core.core.config import get_settings
from booking_core.core.errors import StoreUnavailable

log = structlog.get_logger()
settings = get_settings()

T = TypeVar("T")

SessionFactory = Callable[[], AsyncSession]

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite engines get immediate write transactions."""
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": settings.sqlite_busy_timeout_seconds},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            # Take transaction control away from the driver so BEGIN is ours
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(database_url, echo=echo, future=True)


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory = build_session_factory(engine)


async def init_db():
    """Create all tables (development only: use migrations in production)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> sessionmaker:
    """FastAPI dependency for services that open their own short transactions."""
    return async_session_factory


@asynccontextmanager
async def get_session_context():
    """Context manager for use outside of FastAPI request lifecycle."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def is_transient_error(exc: BaseException) -> bool:
    """Serialization failures, deadlocks and a locked SQLite database."""
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _RETRYABLE_SQLSTATES:
            return True
        if isinstance(exc, OperationalError) and "locked" in str(orig).lower():
            return True
    return False


async def run_in_transaction(
    session_factory: SessionFactory,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_ms: int | None = None,
) -> T:
    """
    Run ``fn`` in a fresh session and commit, retrying transient store errors.

    Business errors raised by ``fn`` roll back and propagate unchanged. After
    the last failed attempt a transient error surfaces as StoreUnavailable.
    """
    attempts = attempts or settings.booking_retry_attempts
    backoff_ms = settings.booking_retry_backoff_ms if backoff_ms is None else backoff_ms

    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session:
                try:
                    result = await fn(session)
                    await session.commit()
                    return result
                except BaseException:
                    await session.rollback()
                    raise
        except (OperationalError, DBAPIError) as exc:
            if not is_transient_error(exc):
                raise
            log.warning(
                "store.transient_error",
                attempt=attempt,
                attempts=attempts,
                error=str(exc.orig),
            )
            if attempt == attempts:
                raise StoreUnavailable() from exc
            await asyncio.sleep(backoff_ms * attempt / 1000)

    raise StoreUnavailable()
