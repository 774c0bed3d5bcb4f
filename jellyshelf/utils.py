"""Utility helpers for the Jellyshelf client."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping
from urllib.parse import urlparse

from .errors import ConfigurationError


LINE_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
MARKUP_RE = re.compile(r"<[^>]*>")
TEMPLATE_TOKEN_RE = re.compile(r"\{([A-Za-z]+)\}")

TICKS_PER_SECOND = 10_000_000


def normalize_server_url(value: str) -> str:
    """Return the trimmed server URL or raise ``ConfigurationError``."""

    candidate = (value or "").strip()
    if not candidate:
        raise ConfigurationError("Server URL must not be empty")
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise ConfigurationError(f"Server URL must use http or https: {candidate!r}")
    if not parsed.hostname:
        raise ConfigurationError(f"Server URL is missing a host: {candidate!r}")
    try:
        parsed.port
    except ValueError as exc:
        raise ConfigurationError(f"Server URL has an invalid port: {candidate!r}") from exc
    return candidate.rstrip("/")


def strip_markup(text: str) -> str:
    """Drop inline HTML from an overview, keeping line breaks."""

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = LINE_BREAK_RE.sub("\n", normalized)
    return MARKUP_RE.sub("", normalized)


def format_bytes(size: int) -> str:
    """Render a byte count with a decimal unit suffix."""

    if size >= 1_000_000_000:
        return f"{size / 1_000_000_000:.2f} GB"
    if size >= 1_000_000:
        return f"{size / 1_000_000:.2f} MB"
    if size >= 1_000:
        return f"{size / 1_000:.2f} KB"
    return f"{size} B"


def format_seconds(total_seconds: int) -> str:
    """Render a duration as ``1h 2m 5s``, omitting empty hours and minutes."""

    minutes, seconds = divmod(total_seconds, 60)
    hours, minutes = divmod(minutes, 60)
    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")
    return " ".join(parts)


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{token}`` placeholders and trim dangling separators.

    Tokens missing from ``values`` render as empty strings.
    """

    def _replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), "")

    rendered = TEMPLATE_TOKEN_RE.sub(_replace, template).strip()
    return rendered.removesuffix("-").removeprefix("-").strip()


def parse_timestamp_millis(value: str | None) -> int:
    """Parse a server timestamp into epoch milliseconds, 0 when unparseable."""

    if not value:
        return 0
    try:
        parsed = datetime.strptime(value[:19], "%Y-%m-%dT%H:%M:%S")
    except ValueError:
        return 0
    return int(parsed.replace(tzinfo=timezone.utc).timestamp() * 1000)


def date_part(value: str | None) -> str:
    """Return the ``YYYY-MM-DD`` prefix of a server timestamp."""

    if not value:
        return ""
    return value.split("T", 1)[0]
