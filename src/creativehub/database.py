"""Database connection handle and session helpers."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from creativehub.config import settings
from creativehub.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class Database:
    """Lazily-connected handle to the record store.

    The engine is created on the first call to ``connect()`` and reused until
    ``close()``. One instance is owned by the application (``app.state``);
    CLI commands and tests create their own.
    """

    def __init__(self, url: str, **engine_kwargs) -> None:
        self.url = url
        self.engine_kwargs = engine_kwargs
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def connect(self) -> async_sessionmaker[AsyncSession]:
        """Create the engine if needed and return the session factory."""
        if self._sessionmaker is not None:
            return self._sessionmaker

        kwargs = dict(self.engine_kwargs)
        if self.url.startswith("postgresql"):
            kwargs.setdefault("pool_size", settings.database_pool_size)
            kwargs.setdefault("max_overflow", settings.database_max_overflow)
            kwargs.setdefault("pool_pre_ping", True)

        try:
            self._engine = create_async_engine(self.url, **kwargs)
        except (SQLAlchemyError, ImportError, ValueError) as e:
            logger.error(f"Failed to create database engine: {e!r}")
            raise StoreUnavailable() from e

        self._sessionmaker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        return self._sessionmaker

    async def close(self) -> None:
        """Dispose of the engine; the next ``connect()`` creates a new one."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Open a session, rolling back on error."""
        factory = self.connect()
        async with factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise


def create_database() -> Database:
    """Create a handle for the configured database."""
    url = settings.database_url_test if settings.is_test else settings.database_url
    return Database(url)


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session from the application's handle."""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Standalone session for CLI commands and scripts."""
    database = create_database()
    try:
        async with database.session() as session:
            yield session
    finally:
        await database.close()
