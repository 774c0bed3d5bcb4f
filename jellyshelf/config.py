"""Application configuration models."""

from __future__ import annotations

import platform
from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .errors import ConfigurationError
from .utils import normalize_server_url


DEFAULT_SERVER_URL = "http://amaderftp.net:8096"
EPISODE_DETAIL_FLAGS: tuple[str, ...] = ("Overview", "Size", "Runtime")


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Jellyshelf", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    media_server_url: str = Field(default=DEFAULT_SERVER_URL, alias="MEDIA_SERVER_URL")
    media_server_username: str = Field(default="user", alias="MEDIA_SERVER_USERNAME")
    media_server_password: str = Field(default="1234", alias="MEDIA_SERVER_PASSWORD")

    client_name: str = Field(default="Jellyshelf", alias="CLIENT_NAME")
    client_version: str = Field(default="1.0.0", alias="CLIENT_VERSION")
    device_name: str = Field(
        default_factory=lambda: platform.node() or "Jellyshelf", alias="DEVICE_NAME"
    )

    episode_template: str = Field(default="{number} - {title}", alias="EPISODE_TEMPLATE")
    episode_details: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), alias="EPISODE_DETAILS"
    )

    request_timeout_seconds: float = Field(
        default=20.0, alias="REQUEST_TIMEOUT", gt=0, le=300
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./jellyshelf.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("media_server_url", mode="before")
    @classmethod
    def _validate_server_url(cls, value: object) -> str:
        """Reject server URLs that are not absolute http(s) URLs."""

        if value is None:
            return DEFAULT_SERVER_URL
        try:
            return normalize_server_url(str(value))
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("episode_details", mode="before")
    @classmethod
    def _parse_episode_details(cls, value: object) -> tuple[str, ...]:
        """Normalise episode detail flags from comma separated values."""

        if value is None:
            return ()
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("EPISODE_DETAILS must be a string or iterable of strings")

        lookup = {flag.lower(): flag for flag in EPISODE_DETAIL_FLAGS}
        cleaned: list[str] = []
        for entry in raw_values:
            if not entry:
                continue
            flag = lookup.get(entry.lower())
            if flag is None:
                raise ValueError("Unknown episode detail flags configured")
            if flag not in cleaned:
                cleaned.append(flag)
        return tuple(cleaned)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
