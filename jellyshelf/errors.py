"""Exceptions raised by the media server client."""

from __future__ import annotations


class MediaServerError(Exception):
    """Base class for every error surfaced by the client."""


class TransportError(MediaServerError):
    """The request never produced an HTTP response (connection, DNS, timeout)."""


class AuthenticationError(MediaServerError):
    """The login call was answered with a non-success status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"Login failed: {status_code}")


class ServerResponseError(MediaServerError):
    """A catalog call was answered with a non-success status."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Media server returned {status_code} for {url}")


class DecodeError(MediaServerError):
    """A response body did not match the expected schema."""


class ConfigurationError(MediaServerError, ValueError):
    """A configuration value (such as the server URL) was rejected."""


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DecodeError",
    "MediaServerError",
    "ServerResponseError",
    "TransportError",
]
