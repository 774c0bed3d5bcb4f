"""Read-through cache for category and genre filter options."""

from __future__ import annotations

import asyncio
import logging

from pydantic import TypeAdapter, ValidationError

from ..errors import MediaServerError
from ..models import FilterKind, FilterList, FilterOption, ItemList
from ..store import CredentialStore
from .auth import SessionManager
from .pipeline import AuthenticatedPipeline
from .preferences import ServerPreferences

logger = logging.getLogger(__name__)

STORE_KEYS: dict[FilterKind, str] = {
    FilterKind.CATEGORY: "pref_cached_categories",
    FilterKind.GENRE: "pref_cached_genres",
}
ALL_CATEGORIES = FilterOption(label="All", value="")

_OPTION_LIST = TypeAdapter(list[FilterOption])


def encode_options(options: list[FilterOption]) -> str:
    """Serialise options to the durable ``[{"name", "id"}]`` JSON blob."""

    return _OPTION_LIST.dump_json(options, by_alias=True).decode("utf-8")


def decode_options(blob: str) -> list[FilterOption]:
    """Parse a durable blob; raises ``ValueError`` when it is malformed."""

    return _OPTION_LIST.validate_json(blob)


class FilterCache:
    """Memory, then durable store, then network lookup per filter kind.

    Network failures never propagate: browsing must work without filters.
    """

    def __init__(
        self,
        pipeline: AuthenticatedPipeline,
        sessions: SessionManager,
        preferences: ServerPreferences,
        store: CredentialStore,
    ) -> None:
        self._pipeline = pipeline
        self._sessions = sessions
        self._preferences = preferences
        self._store = store
        self._memory: dict[FilterKind, list[FilterOption]] = {}
        self._locks: dict[FilterKind, asyncio.Lock] = {}

    async def get_categories(self) -> list[FilterOption]:
        return await self._get(FilterKind.CATEGORY)

    async def get_genres(self) -> list[FilterOption]:
        return await self._get(FilterKind.GENRE)

    async def get_filter_list(self) -> FilterList:
        """Categories, sort fields and genres for a browsing UI."""

        categories, genres = await asyncio.gather(self.get_categories(), self.get_genres())
        return FilterList(categories=categories, genres=genres)

    async def invalidate(self, kind: FilterKind | None = None) -> None:
        """Drop cached options so the next lookup hits the server."""

        kinds = [kind] if kind is not None else list(FilterKind)
        for entry in kinds:
            self._memory.pop(entry, None)
        await self._store.delete(*(STORE_KEYS[entry] for entry in kinds))
        logger.info("Invalidated filter cache: %s", ", ".join(entry.value for entry in kinds))

    async def _get(self, kind: FilterKind) -> list[FilterOption]:
        cached = self._memory.get(kind)
        if cached:
            return list(cached)

        lock = self._locks.setdefault(kind, asyncio.Lock())
        async with lock:
            cached = self._memory.get(kind)
            if cached:
                return list(cached)

            stored = await self._load_stored(kind)
            if stored:
                self._memory[kind] = stored
                return list(stored)

            options, complete = await self._fetch(kind)
            if complete:
                await self._store.set_string(STORE_KEYS[kind], encode_options(options))
                self._memory[kind] = options
            return list(options)

    async def _load_stored(self, kind: FilterKind) -> list[FilterOption]:
        blob = await self._store.get_string(STORE_KEYS[kind])
        if not blob:
            return []
        try:
            return decode_options(blob)
        except (ValueError, ValidationError):
            logger.warning("Discarding unreadable cached %s filters", kind.value)
            return []

    async def _fetch(self, kind: FilterKind) -> tuple[list[FilterOption], bool]:
        """Return options from the server and whether the fetch succeeded."""

        options: list[FilterOption] = [ALL_CATEGORIES] if kind is FilterKind.CATEGORY else []
        try:
            session = await self._sessions.ensure_authenticated()
            base_url = await self._preferences.get_server_url()
            if kind is FilterKind.CATEGORY:
                response = await self._pipeline.get(f"{base_url}/Users/{session.user_id}/Views")
            else:
                response = await self._pipeline.get(
                    f"{base_url}/Genres",
                    params={"Recursive": "true", "IncludeItemTypes": "Movie,Series"},
                )
            if not response.is_success:
                logger.warning(
                    "Fetching %s filters failed with status %s", kind.value, response.status_code
                )
                return options, False
            listing = ItemList.model_validate(response.json())
        except (MediaServerError, ValueError, ValidationError) as exc:
            logger.warning("Fetching %s filters failed: %s", kind.value, exc)
            return options, False

        seen = {option.value for option in options}
        fetched: list[FilterOption] = []
        for item in listing.items:
            if item.id in seen:
                continue
            seen.add(item.id)
            fetched.append(FilterOption(label=item.name, value=item.id))
        if kind is FilterKind.GENRE:
            fetched.sort(key=lambda option: option.label)
        options.extend(fetched)
        logger.info("Fetched %d %s filters from the server", len(fetched), kind.value)
        return options, True
