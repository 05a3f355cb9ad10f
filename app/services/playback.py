"""Availability checks and "latest" feeds from the playback provider."""

from __future__ import annotations

import logging
from typing import Any, Literal

import httpx
from pydantic import TypeAdapter, ValidationError

from ..config import Settings
from ..models import PlaybackListing
from ..utils import build_request_signature
from .cache_store import CacheStore
from .errors import ProviderPayloadError, ProviderUnavailableError

logger = logging.getLogger(__name__)

PROVIDER = "playback"

FeedKind = Literal["movie", "tv", "episode"]

_FEED_PATHS: dict[str, str] = {
    "movie": "/movies/latest/page-{page}.json",
    "tv": "/tvshows/latest/page-{page}.json",
    "episode": "/episodes/latest/page-{page}.json",
}

_LISTINGS = TypeAdapter(list[PlaybackListing])


class PlaybackProber:
    """Answer whether a title can be played through the embed host right now.

    Probes are ``HEAD`` requests against the deterministic embed URL and are
    never cached: playability is volatile and re-checked on every sync pass.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        cache: CacheStore,
    ):
        self._settings = settings
        self._client = http_client
        self._cache = cache
        self._embed_base = str(settings.playback_embed_url).rstrip("/")
        self._feed_base = str(settings.playback_feed_url).rstrip("/")

    def embed_url(
        self,
        external_id: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> str:
        """Return the player URL for a movie, or for one episode of a series."""

        if season is None and episode is None:
            return f"{self._embed_base}/embed/movie?imdb={external_id}"
        if season is None or episode is None:
            raise ValueError("season and episode must be given together")
        return (
            f"{self._embed_base}/embed/tv?imdb={external_id}"
            f"&season={season}&episode={episode}"
        )

    async def probe(
        self,
        external_id: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> bool:
        url = self.embed_url(external_id, season, episode)
        try:
            response = await self._client.head(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            logger.debug("Availability probe for %s failed: %s", url, exc)
            return False
        return response.is_success

    async def latest(self, kind: FeedKind, page: int = 1) -> list[PlaybackListing]:
        """Return one page of the provider's newest movies, series or episodes."""

        try:
            path = _FEED_PATHS[kind].format(page=page)
        except KeyError as exc:
            raise ValueError(f"Unsupported feed kind: {kind}") from exc

        signature = build_request_signature(PROVIDER, path)
        cached = await self._cache.get_fresh(
            signature, self._settings.listing_cache_seconds
        )
        if cached is not None:
            try:
                return _LISTINGS.validate_python(cached)
            except ValidationError:
                logger.warning("Discarding unreadable cache entry %s", signature)

        payload = await self._fetch_feed(path)
        try:
            listings = _LISTINGS.validate_python(payload)
        except ValidationError as exc:
            raise ProviderPayloadError(
                PROVIDER, path, reason=f"{exc.error_count()} invalid field(s)"
            ) from exc
        await self._cache.put(signature, payload)
        return listings

    async def _fetch_feed(self, path: str) -> Any:
        url = f"{self._feed_base}{path}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Playback feed %s failed: %s", url, exc)
            raise ProviderUnavailableError(
                PROVIDER, path, reason=exc.__class__.__name__
            ) from exc
        if not response.is_success:
            raise ProviderUnavailableError(
                PROVIDER, path, status_code=response.status_code
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderPayloadError(
                PROVIDER, path, reason="response was not JSON"
            ) from exc
        if not isinstance(payload, list):
            raise ProviderPayloadError(PROVIDER, path, reason="expected a JSON list")
        return payload
