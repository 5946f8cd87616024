"""
Database handle for the Tap4Service backend.

The async engine and its session factory are owned by a ``Database`` object
that is created once in the application lifespan and disposed on shutdown.
Route handlers never touch the engine directly: they receive a short-lived
``AsyncSession`` through the ``get_db`` dependency in ``tap4service.api.deps``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tap4service.core.config import Settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    # SQLite does not enforce foreign keys by default
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Pooled async engine plus a session factory bound to it."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build the engine from application settings.

        SQLite URLs get no pool sizing (the driver does not support it) and
        have foreign key enforcement switched on for every connection.
        """
        url = settings.database_url
        if url.startswith("sqlite"):
            engine = create_async_engine(url, echo=settings.sql_echo)
            enable_sqlite_foreign_keys(engine)
        else:
            engine = create_async_engine(
                url,
                echo=settings.sql_echo,
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_pre_ping=True,
            )
        return cls(engine)

    async def create_all(self) -> None:
        """Create any missing tables from the ORM metadata."""
        from tap4service.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on ``PRAGMA foreign_keys`` for every new SQLite connection."""
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
