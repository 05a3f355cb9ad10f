"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ReelVault", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=5000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/original", alias="TMDB_IMAGE_BASE_URL"
    )

    playback_embed_url: HttpUrl = Field(
        default="https://vidsrc.me",
        alias="PLAYBACK_EMBED_URL",
        validation_alias=AliasChoices("PLAYBACK_EMBED_URL", "VIDSRC_EMBED_URL"),
    )
    playback_feed_url: HttpUrl = Field(
        default="https://vidsrc.xyz",
        alias="PLAYBACK_FEED_URL",
        validation_alias=AliasChoices("PLAYBACK_FEED_URL", "VIDSRC_FEED_URL"),
    )

    listing_cache_seconds: int = Field(
        default=3_600, alias="LISTING_CACHE_TTL", ge=1
    )
    discovery_cache_seconds: int = Field(
        default=86_400, alias="DISCOVERY_CACHE_TTL", ge=1
    )
    derived_cache_seconds: int = Field(
        default=86_400, alias="DERIVED_CACHE_TTL", ge=1
    )
    cache_max_age_seconds: int = Field(
        default=7 * 86_400, alias="CACHE_MAX_AGE", ge=3_600
    )

    import_pacing_seconds: float = Field(
        default=1.0, alias="IMPORT_PACING_SECONDS", ge=0
    )
    import_error_backoff_seconds: float = Field(
        default=5.0, alias="IMPORT_ERROR_BACKOFF_SECONDS", ge=0
    )
    import_initial_retries: int = Field(
        default=3, alias="IMPORT_INITIAL_RETRIES", ge=1, le=10
    )
    import_confirm_threshold: int = Field(
        default=5, alias="IMPORT_CONFIRM_THRESHOLD", ge=1
    )

    featured_rating_threshold: float = Field(
        default=7.5, alias="FEATURED_RATING_THRESHOLD", ge=0, le=10
    )
    top_cast_count: int = Field(default=5, alias="TOP_CAST_COUNT", ge=0, le=50)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelvault.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("tmdb_image_base_url")
    @classmethod
    def _trim_image_base(cls, value: str) -> str:
        return value.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
