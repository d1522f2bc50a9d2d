"""Async engine ownership and transactional sessions for the launchpad store.

PostgreSQL (asyncpg) is the production backend; SQLite through aiosqlite is
used for local runs and tests.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from launchpad_engine.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

ASYNC_POSTGRES_PREFIX = "postgresql+asyncpg://"


def to_async_url(database_url: str) -> str:
    """Rewrite a bare ``postgresql://`` URL to the asyncpg dialect."""
    if database_url.startswith("postgresql://"):
        logger.warning("DATABASE_URL uses 'postgresql://'; switching to %s", ASYNC_POSTGRES_PREFIX)
        return ASYNC_POSTGRES_PREFIX + database_url.removeprefix("postgresql://")
    return database_url


class DatabaseManager:
    """Owns the async engine and hands out transactional sessions.

    The engine is created on first use. Pool sizing only applies to
    server databases; SQLite connections are not pooled that way.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        engine: AsyncEngine | None = None,
    ) -> None:
        """Initialize database manager.

        Args:
            database_url: Database connection URL.
            pool_size: Connection pool size (server databases only).
            max_overflow: Maximum overflow connections (server databases only).
            echo: Echo SQL statements for debugging.
            engine: Pre-built engine, mainly for tests.
        """
        self.database_url = to_async_url(database_url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: AsyncEngine | None = engine
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            options: dict[str, Any] = {"echo": self._echo}
            if not self.is_sqlite:
                options.update(
                    pool_size=self._pool_size,
                    max_overflow=self._max_overflow,
                    pool_pre_ping=True,
                )
            self._engine = create_async_engine(self.database_url, **options)
        return self._engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on success and rolls back on error."""
        if self._sessions is None:
            self._sessions = async_sessionmaker(bind=self.engine, expire_on_commit=False)

        async with self._sessions() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_schema_async(self) -> None:
        """Create any missing tables; existing tables are left untouched."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready (%s)", self.engine.dialect.name)

    async def dispose_async(self) -> None:
        """Release pooled connections; safe to call more than once."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database connections disposed")
