"""Server address preference backed by the credential store."""

from __future__ import annotations

import logging

from ..errors import ConfigurationError
from ..store import SERVER_URL_KEY, CredentialStore
from ..utils import normalize_server_url

logger = logging.getLogger(__name__)


class ServerPreferences:
    """Read and validate the media server base URL."""

    def __init__(self, store: CredentialStore, default_url: str) -> None:
        self._store = store
        self._default_url = normalize_server_url(default_url)

    async def get_server_url(self) -> str:
        """Return the stored base URL, or the configured default."""

        stored = await self._store.get_string(SERVER_URL_KEY)
        if not stored:
            return self._default_url
        try:
            return normalize_server_url(stored)
        except ConfigurationError:
            logger.warning("Ignoring malformed stored server URL %r", stored)
            return self._default_url

    async def set_server_url(self, url: str) -> str:
        """Validate and persist a new base URL.

        Raises ``ConfigurationError`` without touching the stored value when
        the URL is malformed.
        """

        normalized = normalize_server_url(url)
        await self._store.set_string(SERVER_URL_KEY, normalized)
        logger.info("Media server URL set to %s", normalized)
        return normalized
