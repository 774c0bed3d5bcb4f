"""Listing, detail, episode and playback queries against the media server."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..errors import DecodeError, ServerResponseError
from ..models import (
    DEFAULT_EPISODE_TEMPLATE,
    PAGE_SIZE,
    CatalogEntry,
    CatalogItem,
    Episode,
    FilterSelections,
    ItemList,
    ItemRef,
    Page,
    PlaybackSource,
)
from .auth import SessionManager
from .pipeline import AuthenticatedPipeline
from .preferences import ServerPreferences

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

EPISODE_FIELDS = "DateCreated,OriginalTitle,SortName"


class CatalogService:
    """Turn page, search term and filter selections into catalog pages."""

    def __init__(
        self,
        pipeline: AuthenticatedPipeline,
        sessions: SessionManager,
        preferences: ServerPreferences,
        *,
        episode_template: str = DEFAULT_EPISODE_TEMPLATE,
        episode_details: tuple[str, ...] = (),
    ) -> None:
        self._pipeline = pipeline
        self._sessions = sessions
        self._preferences = preferences
        self._episode_template = episode_template
        self._episode_details = episode_details

    async def list_popular(self, page: int) -> Page:
        """Unfiltered, unsorted listing."""

        return await self.search(page, "", FilterSelections())

    async def list_latest(self, page: int) -> Page:
        """Newest additions first."""

        params = self._listing_params(page)
        params["SortBy"] = "DateCreated,SortName"
        params["SortOrder"] = "Descending"
        return await self._fetch_page(page, params)

    async def search(
        self, page: int, query: str, filters: FilterSelections | None = None
    ) -> Page:
        params = self.build_search_params(page, query, filters or FilterSelections())
        return await self._fetch_page(page, params)

    @staticmethod
    def build_search_params(
        page: int, query: str, filters: FilterSelections
    ) -> dict[str, Any]:
        """Return the ordered query parameters for a search listing."""

        params = CatalogService._listing_params(page)
        if query and query.strip():
            params["SearchTerm"] = query
        if filters.category.strip():
            params["ParentId"] = filters.category
        if filters.sort is not None:
            params["SortBy"] = filters.sort.field.server_key
            params["SortOrder"] = "Ascending" if filters.sort.ascending else "Descending"
        genre_ids = ",".join(genre for genre in filters.genre_ids if genre)
        if genre_ids:
            params["GenreIds"] = genre_ids
        return params

    @staticmethod
    def _listing_params(page: int) -> dict[str, Any]:
        if page < 1:
            raise ValueError("Pages are numbered from 1")
        return {
            "StartIndex": str((page - 1) * PAGE_SIZE),
            "Limit": str(PAGE_SIZE),
            "Recursive": "true",
            "IncludeItemTypes": "Movie,Series",
            "ImageTypeLimit": "1",
            "EnableImageTypes": "Primary",
        }

    async def get_item(self, ref: str) -> CatalogItem:
        """Fetch and decode the item behind a stored reference."""

        item_ref = ItemRef.parse(ref)
        response = await self._pipeline.get(item_ref.url)
        return self._decode(response, CatalogItem)

    async def get_details(self, ref: str) -> CatalogEntry:
        item = await self.get_item(ref)
        base_url = await self._preferences.get_server_url()
        return item.to_catalog_entry(base_url, self._sessions.session.user_id)

    async def list_episodes(self, ref: str) -> list[Episode]:
        """Episodes of a series or season; any other item is a single episode.

        The server's episode order is reversed.
        """

        item_ref = ItemRef.parse(ref)
        base_url = await self._preferences.get_server_url()

        if item_ref.is_series:
            items = await self._fetch_episodes(base_url, item_ref.item_id)
        elif item_ref.parent_series_id is not None:
            items = await self._fetch_episodes(
                base_url, item_ref.parent_series_id, season_id=item_ref.item_id
            )
        else:
            response = await self._pipeline.get(item_ref.url)
            items = [self._decode(response, CatalogItem)]

        user_id = self._sessions.session.user_id
        episodes = [
            item.to_episode(
                base_url,
                user_id,
                details=self._episode_details,
                template=self._episode_template,
            )
            for item in items
        ]
        episodes.reverse()
        return episodes

    async def resolve_playback_source(self, ref: str) -> PlaybackSource | None:
        """Direct stream for the item's first media source, if it has one."""

        item = await self.get_item(ref)
        if item.first_media_source is None:
            logger.info("Item %s has no media sources", item.id)
            return None
        base_url = await self._preferences.get_server_url()
        return PlaybackSource(
            url=f"{base_url}/Videos/{item.id}/stream?static=True",
            headers={"Authorization": self._sessions.authorization_header()},
        )

    async def _fetch_episodes(
        self, base_url: str, series_id: str, *, season_id: str | None = None
    ) -> list[CatalogItem]:
        params: dict[str, Any] = {"Fields": EPISODE_FIELDS}
        if season_id is not None:
            params["SeasonId"] = season_id
        response = await self._pipeline.get(
            f"{base_url}/Shows/{series_id}/Episodes", params=params
        )
        return self._decode(response, ItemList).items

    async def _fetch_page(self, page: int, params: dict[str, Any]) -> Page:
        session = await self._sessions.ensure_authenticated()
        base_url = await self._preferences.get_server_url()
        response = await self._pipeline.get(
            f"{base_url}/Users/{session.user_id}/Items", params=params
        )
        listing = self._decode(response, ItemList)
        user_id = self._sessions.session.user_id
        return Page(
            items=listing.items,
            entries=[item.to_catalog_entry(base_url, user_id) for item in listing.items],
            total_count=listing.total_record_count,
            page=page,
        )

    @staticmethod
    def _decode(response: httpx.Response, model: type[ModelT]) -> ModelT:
        if not response.is_success:
            raise ServerResponseError(response.status_code, str(response.request.url))
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise DecodeError(
                f"Unexpected {model.__name__} payload from {response.request.url}"
            ) from exc
