"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from jellyshelf.config import DEFAULT_SERVER_URL, Settings


def test_server_url_is_normalised() -> None:
    """Trailing slashes and whitespace should be stripped from the server URL."""

    settings = Settings(_env_file=None, MEDIA_SERVER_URL=" https://jelly.example/ ")

    assert settings.media_server_url == "https://jelly.example"


def test_server_url_defaults() -> None:
    """The built-in server URL is used when nothing is configured."""

    settings = Settings(_env_file=None)

    assert settings.media_server_url == DEFAULT_SERVER_URL


def test_malformed_server_url_raises() -> None:
    """Malformed server URLs are rejected at configuration time."""

    with pytest.raises(ValueError, match="http or https"):
        Settings(_env_file=None, MEDIA_SERVER_URL="jelly.example")


def test_episode_details_accepts_case_insensitive_values() -> None:
    """Episode detail flags should be parsed case-insensitively."""

    settings = Settings(_env_file=None, EPISODE_DETAILS="size, RUNTIME,size")

    assert settings.episode_details == ("Size", "Runtime")


def test_episode_details_from_environment(monkeypatch) -> None:
    """Comma separated environment values should not be parsed as JSON."""

    monkeypatch.setenv("EPISODE_DETAILS", "Overview,Size")

    settings = Settings(_env_file=None)

    assert settings.episode_details == ("Overview", "Size")


def test_unknown_episode_detail_raises() -> None:
    """Unknown detail flags should raise a validation error."""

    with pytest.raises(ValueError, match="Unknown episode detail flags configured"):
        Settings(_env_file=None, EPISODE_DETAILS="Subtitles")


def test_credentials_come_from_configuration(monkeypatch) -> None:
    """Login credentials are configuration inputs rather than constants."""

    monkeypatch.setenv("MEDIA_SERVER_USERNAME", "alice")
    monkeypatch.setenv("MEDIA_SERVER_PASSWORD", "s3cret")

    settings = Settings(_env_file=None)

    assert settings.media_server_username == "alice"
    assert settings.media_server_password == "s3cret"
