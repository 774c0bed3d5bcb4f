"""Durable string key/value storage for credentials and cached filters."""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import Preference

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
USER_ID_KEY = "user_id"
DEVICE_ID_KEY = "device_id"
SERVER_URL_KEY = "pref_base_url"


class CredentialStore(Protocol):
    """Minimal interface the client needs from persistent preferences."""

    async def get_string(self, key: str) -> str | None: ...

    async def set_string(self, key: str, value: str) -> None: ...

    async def set_many(self, values: dict[str, str]) -> None: ...

    async def delete(self, *keys: str) -> None: ...


class InMemoryCredentialStore:
    """Process-local store used by tests and short-lived embeddings."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    async def get_string(self, key: str) -> str | None:
        return self._values.get(key)

    async def set_string(self, key: str, value: str) -> None:
        self._values[key] = value

    async def set_many(self, values: dict[str, str]) -> None:
        self._values.update(values)

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self._values.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._values)


class DatabaseCredentialStore:
    """Store preferences as rows of the ``preferences`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_string(self, key: str) -> str | None:
        async with self._session_factory() as session:
            record = await session.get(Preference, key)
            return record.value if record is not None else None

    async def set_string(self, key: str, value: str) -> None:
        await self.set_many({key: value})

    async def set_many(self, values: dict[str, str]) -> None:
        """Write every pair in one transaction."""

        if not values:
            return
        async with self._session_factory() as session:
            async with session.begin():
                existing = await session.execute(
                    select(Preference).where(Preference.key.in_(list(values)))
                )
                records = {record.key: record for record in existing.scalars()}
                for key, value in values.items():
                    record = records.get(key)
                    if record is None:
                        session.add(Preference(key=key, value=value))
                    else:
                        record.value = value
        logger.debug("Persisted preferences: %s", ", ".join(sorted(values)))

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(Preference).where(Preference.key.in_(list(keys)))
                )
