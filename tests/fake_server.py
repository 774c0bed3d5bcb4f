"""In-process stand-in for a Jellyfin-style server used by the tests."""

from __future__ import annotations

import asyncio
import re
from collections import Counter
from typing import Any, Callable

import httpx

TOKEN_RE = re.compile(r'Token="([^"]*)"')
USER_ID = "user-1"
BASE_URL = "http://media.example:8096"


def item_payload(item_id: str, name: str, item_type: str = "Movie", **extra: Any) -> dict[str, Any]:
    """Return a PascalCase item DTO as the server would send it."""

    payload: dict[str, Any] = {
        "Id": item_id,
        "Name": name,
        "Type": item_type,
        "LocationType": "FileSystem",
        "ImageTags": {"Primary": f"tag-{item_id}"},
    }
    payload.update(extra)
    return payload


class FakeMediaServer:
    """Async ``httpx.MockTransport`` handler with token bookkeeping."""

    def __init__(self, *, login_delay: float = 0.0) -> None:
        self.login_delay = login_delay
        self.login_status = 200
        self.login_calls = 0
        self.valid_tokens: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.hits: Counter[str] = Counter()
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response] | Any] = {}
        self.reject_all = False

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def expire_tokens(self) -> None:
        self.valid_tokens.clear()

    def route(self, path: str, payload: Any) -> None:
        """Serve ``payload`` (JSON or a callable) for ``path``."""

        self.routes[path] = payload

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        self.hits[path] += 1

        if path.endswith("/Users/AuthenticateByName"):
            return await self._login(request)

        match = TOKEN_RE.search(request.headers.get("Authorization", ""))
        token = match.group(1) if match else ""
        if self.reject_all or token not in self.valid_tokens:
            return httpx.Response(401)

        handler = self.routes.get(path)
        if handler is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(handler):
            return handler(request)
        return httpx.Response(200, json=handler)

    async def _login(self, request: httpx.Request) -> httpx.Response:
        self.login_calls += 1
        if self.login_delay:
            await asyncio.sleep(self.login_delay)
        if self.login_status != 200:
            return httpx.Response(self.login_status, json={"error": "denied"})
        token = f"token-{self.login_calls}"
        self.valid_tokens.add(token)
        return httpx.Response(
            200,
            json={"AccessToken": token, "SessionInfo": {"UserId": USER_ID}},
        )


def build_settings(**overrides: Any):
    """Return a settings object pointed at the fake server."""

    from jellyshelf.config import Settings

    base: dict[str, Any] = {
        "MEDIA_SERVER_URL": BASE_URL,
        "MEDIA_SERVER_USERNAME": "user",
        "MEDIA_SERVER_PASSWORD": "1234",
        "CLIENT_NAME": "Jellyshelf",
        "CLIENT_VERSION": "1.0.0",
        "DEVICE_NAME": "pytest-device",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


async def build_client(http_client: httpx.AsyncClient, store=None, **overrides: Any):
    """Create a ``MediaServerClient`` over ``http_client``."""

    from jellyshelf.services.client import MediaServerClient
    from jellyshelf.store import InMemoryCredentialStore

    return await MediaServerClient.create(
        build_settings(**overrides),
        http_client,
        store if store is not None else InMemoryCredentialStore(),
    )
