"""Request pipeline attaching credentials and recovering from expired tokens."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..errors import TransportError
from .auth import SessionManager, is_login_request

logger = logging.getLogger(__name__)


class AuthenticatedPipeline:
    """Send requests with the session token, refreshing it once on 401."""

    def __init__(self, http_client: httpx.AsyncClient, sessions: SessionManager) -> None:
        self._client = http_client
        self._sessions = sessions

    async def get(
        self, url: str, *, params: Mapping[str, Any] | None = None
    ) -> httpx.Response:
        request = self._client.build_request("GET", url, params=params)
        return await self.send(request)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Execute ``request``; a 401 triggers one refresh and one replay.

        The replay's response is returned whatever its status.
        """

        if is_login_request(request):
            return await self._execute(request)

        session = await self._sessions.ensure_authenticated()
        response = await self._execute(self._authorize(request, session.access_token))
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        await response.aclose()
        refreshed = await self._sessions.force_refresh(session.access_token)
        logger.info(
            "Replaying %s %s with refreshed token", request.method, request.url.path
        )
        return await self._execute(self._authorize(request, refreshed.access_token))

    def _authorize(self, request: httpx.Request, token: str) -> httpx.Request:
        headers = request.headers.copy()
        headers["Authorization"] = self._sessions.authorization_header(token)
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )

    async def _execute(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.HTTPError as exc:
            logger.warning(
                "Transport failure for %s %s: %s",
                request.method,
                request.url.path,
                exc.__class__.__name__,
            )
            raise TransportError(str(exc) or exc.__class__.__name__) from exc
