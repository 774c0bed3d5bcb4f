"""SQLite persistence for credentials and cached filter options."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    metadata = MetaData()


class Database:
    """Own the async engine and hand out sessions bound to it."""

    def __init__(self, database_url: str):
        self._url = make_url(database_url)
        if self._url.get_backend_name() == "sqlite":
            _prepare_sqlite_path(self._url.database)
        self._engine: AsyncEngine = create_async_engine(self._url)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create the preferences table on first start."""

        # Registers the mapped tables on ``Base.metadata``.
        from . import db_models  # noqa: F401

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info(
            "Preference database ready at %s",
            self._url.render_as_string(hide_password=True),
        )

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session


def _prepare_sqlite_path(database: str | None) -> None:
    """Create the parent directory of a file-backed SQLite database."""

    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
