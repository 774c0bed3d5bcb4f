"""Facade wiring the session, pipeline, catalog and filter services together."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings
from ..errors import ConfigurationError
from ..models import (
    CatalogEntry,
    CatalogItem,
    Episode,
    FilterKind,
    FilterList,
    FilterOption,
    FilterSelections,
    Page,
    PlaybackSource,
)
from ..store import CredentialStore
from .auth import SessionManager, load_device_identity
from .catalog import CatalogService
from .filters import FilterCache
from .pipeline import AuthenticatedPipeline
from .preferences import ServerPreferences

logger = logging.getLogger(__name__)


class MediaServerClient:
    """Entry point used by the HTTP surface and embedding applications."""

    def __init__(
        self,
        sessions: SessionManager,
        pipeline: AuthenticatedPipeline,
        preferences: ServerPreferences,
        catalog: CatalogService,
        filters: FilterCache,
    ) -> None:
        self.sessions = sessions
        self.pipeline = pipeline
        self.preferences = preferences
        self.catalog = catalog
        self.filters = filters

    @classmethod
    async def create(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient,
        store: CredentialStore,
    ) -> "MediaServerClient":
        """Build the client, loading device identity and any saved session."""

        if not settings.media_server_username:
            raise ConfigurationError("A media server username is required")
        preferences = ServerPreferences(store, settings.media_server_url)
        device = await load_device_identity(
            store,
            client_name=settings.client_name,
            version=settings.client_version,
            device_name=settings.device_name,
        )
        sessions = SessionManager(
            http_client,
            preferences,
            store,
            device,
            username=settings.media_server_username,
            password=settings.media_server_password,
        )
        await sessions.restore()
        pipeline = AuthenticatedPipeline(http_client, sessions)
        catalog = CatalogService(
            pipeline,
            sessions,
            preferences,
            episode_template=settings.episode_template,
            episode_details=settings.episode_details,
        )
        filters = FilterCache(pipeline, sessions, preferences, store)
        return cls(sessions, pipeline, preferences, catalog, filters)

    async def list_popular(self, page: int) -> Page:
        return await self.catalog.list_popular(page)

    async def list_latest(self, page: int) -> Page:
        return await self.catalog.list_latest(page)

    async def search(
        self, page: int, query: str, filters: FilterSelections | None = None
    ) -> Page:
        return await self.catalog.search(page, query, filters)

    async def get_item(self, ref: str) -> CatalogItem:
        return await self.catalog.get_item(ref)

    async def get_details(self, ref: str) -> CatalogEntry:
        return await self.catalog.get_details(ref)

    async def list_episodes(self, ref: str) -> list[Episode]:
        return await self.catalog.list_episodes(ref)

    async def resolve_playback_source(self, ref: str) -> PlaybackSource | None:
        return await self.catalog.resolve_playback_source(ref)

    async def get_categories(self) -> list[FilterOption]:
        return await self.filters.get_categories()

    async def get_genres(self) -> list[FilterOption]:
        return await self.filters.get_genres()

    async def get_filter_list(self) -> FilterList:
        return await self.filters.get_filter_list()

    async def invalidate_filters(self, kind: FilterKind | None = None) -> None:
        await self.filters.invalidate(kind)

    async def set_server_url(self, url: str) -> str:
        """Switch servers; the old session and cached filters no longer apply."""

        previous = await self.preferences.get_server_url()
        normalized = await self.preferences.set_server_url(url)
        if normalized != previous:
            await self.sessions.logout()
            await self.filters.invalidate()
        return normalized
