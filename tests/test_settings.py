"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_defaults_cover_cache_and_import_policy() -> None:
    """Unconfigured settings should carry the documented TTLs and pacing."""

    settings = Settings(_env_file=None, TMDB_API_KEY="key")

    assert settings.listing_cache_seconds == 3_600
    assert settings.discovery_cache_seconds == 86_400
    assert settings.derived_cache_seconds == 86_400
    assert settings.cache_max_age_seconds == 7 * 86_400
    assert settings.import_initial_retries == 3
    assert settings.import_confirm_threshold == 5
    assert settings.featured_rating_threshold == 7.5
    assert settings.top_cast_count == 5
    assert settings.database_url.startswith("sqlite+aiosqlite://")


def test_blank_api_key_is_treated_as_missing() -> None:
    """Whitespace-only API keys should not count as configured."""

    settings = Settings(_env_file=None, TMDB_API_KEY="   ")

    assert settings.tmdb_api_key is None


def test_image_base_url_trailing_slash_trimmed() -> None:
    """Image URLs are joined with a slash, so the base must not end in one."""

    settings = Settings(
        _env_file=None, TMDB_IMAGE_BASE_URL="https://images.example.com/t/p/w500/"
    )

    assert settings.tmdb_image_base_url == "https://images.example.com/t/p/w500"


def test_playback_url_accepts_legacy_variable_name() -> None:
    """The embed host may still be configured with the older variable name."""

    settings = Settings(_env_file=None, VIDSRC_EMBED_URL="https://embed.example.com")

    assert str(settings.playback_embed_url).rstrip("/") == "https://embed.example.com"


def test_import_retries_must_be_positive() -> None:
    """At least one initial discovery attempt is required."""

    with pytest.raises(ValueError):
        Settings(_env_file=None, IMPORT_INITIAL_RETRIES=0)
