"""Entry point for the FastAPI browsing API."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import asdict
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from .config import settings
from .database import Database
from .errors import (
    AuthenticationError,
    ConfigurationError,
    DecodeError,
    MediaServerError,
    ServerResponseError,
    TransportError,
)
from .models import FilterKind, FilterSelections, SortField, SortSelection
from .services.client import MediaServerClient
from .store import DatabaseCredentialStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class ServerUrlUpdate(BaseModel):
    url: str


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    async with AsyncExitStack() as exit_stack:
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
                headers={"Accept": "application/json"},
                transport=getattr(fastapi_app.state, "http_transport", None),
            )
        )
        database = Database(settings.database_url)
        exit_stack.push_async_callback(database.dispose)
        await database.create_all()

        store = DatabaseCredentialStore(database.session_factory)
        client = await MediaServerClient.create(settings, http_client, store)

        fastapi_app.state.media_client = client
        fastapi_app.state.database = database
        yield


def create_app(transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the API; ``transport`` replaces the network layer when given."""

    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Browse a Jellyfin/Emby media server as a paged catalog",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    fastapi_app.state.http_transport = transport
    register_routes(fastapi_app)
    return fastapi_app


def get_media_client(fastapi_app: FastAPI) -> MediaServerClient:
    client = getattr(fastapi_app.state, "media_client", None)
    if not isinstance(client, MediaServerClient):
        raise RuntimeError("Media server client not initialised")
    return client


def _http_error(exc: Exception) -> HTTPException:
    """Translate client errors into HTTP responses for the caller."""

    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthenticationError):
        return HTTPException(
            status_code=401,
            detail={"error": "authentication_failed", "status": exc.status_code},
        )
    if isinstance(exc, ServerResponseError):
        status = 404 if exc.status_code == 404 else 502
        return HTTPException(
            status_code=status,
            detail={"error": "server_response", "status": exc.status_code},
        )
    if isinstance(exc, TransportError):
        return HTTPException(
            status_code=502, detail={"error": "server_unreachable", "description": str(exc)}
        )
    if isinstance(exc, DecodeError):
        return HTTPException(
            status_code=502, detail={"error": "unexpected_payload", "description": str(exc)}
        )
    if isinstance(exc, MediaServerError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/catalog/popular")
    async def popular(page: int = Query(default=1, ge=1)) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            result = await client.list_popular(page)
        except MediaServerError as exc:
            raise _http_error(exc) from exc
        return result.model_dump(mode="json")

    @fastapi_app.get("/catalog/latest")
    async def latest(page: int = Query(default=1, ge=1)) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            result = await client.list_latest(page)
        except MediaServerError as exc:
            raise _http_error(exc) from exc
        return result.model_dump(mode="json")

    @fastapi_app.get("/catalog/search")
    async def search(
        page: int = Query(default=1, ge=1),
        query: str = "",
        category: str = "",
        sort: SortField | None = None,
        ascending: bool = False,
        genres: str = "",
    ) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            selections = FilterSelections(
                category=category,
                sort=SortSelection(field=sort, ascending=ascending) if sort else None,
                genre_ids=genres,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc
        try:
            result = await client.search(page, query, selections)
        except MediaServerError as exc:
            raise _http_error(exc) from exc
        return result.model_dump(mode="json")

    @fastapi_app.get("/items/details")
    async def details(ref: str) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            entry = await client.get_details(ref)
        except (MediaServerError, ValueError) as exc:
            raise _http_error(exc) from exc
        return entry.model_dump(mode="json")

    @fastapi_app.get("/items/episodes")
    async def episodes(ref: str) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            results = await client.list_episodes(ref)
        except (MediaServerError, ValueError) as exc:
            raise _http_error(exc) from exc
        return {"episodes": [episode.model_dump(mode="json") for episode in results]}

    @fastapi_app.get("/items/playback")
    async def playback(ref: str) -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        try:
            source = await client.resolve_playback_source(ref)
        except (MediaServerError, ValueError) as exc:
            raise _http_error(exc) from exc
        return {"sources": [asdict(source)] if source is not None else []}

    @fastapi_app.get("/filters")
    async def filters() -> dict[str, Any]:
        client = get_media_client(fastapi_app)
        result = await client.get_filter_list()
        return result.model_dump(mode="json")

    @fastapi_app.post("/filters/invalidate")
    async def invalidate_filters(kind: FilterKind | None = None) -> dict[str, str]:
        client = get_media_client(fastapi_app)
        await client.invalidate_filters(kind)
        return {"status": "ok"}

    @fastapi_app.put("/settings/server-url")
    async def update_server_url(payload: ServerUrlUpdate) -> dict[str, str]:
        client = get_media_client(fastapi_app)
        try:
            url = await client.set_server_url(payload.url)
        except ConfigurationError as exc:
            raise _http_error(exc) from exc
        return {"url": url}


app = create_app()
