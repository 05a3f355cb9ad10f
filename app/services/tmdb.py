"""Client for The Movie Database (TMDB), the catalog's metadata provider."""

from __future__ import annotations

import logging
from typing import Any, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..models import (
    ContentKind,
    ProviderListPage,
    ProviderSeasonDetail,
    ProviderTitleDetail,
)
from ..utils import build_request_signature
from .cache_store import CacheStore
from .errors import ProviderPayloadError, ProviderUnavailableError

logger = logging.getLogger(__name__)

PROVIDER = "tmdb"

ModelT = TypeVar("ModelT", bound=BaseModel)


class TMDBClient:
    """Fetch discovery listings, title details and seasons from TMDB.

    Listing calls are read-through cached in the :class:`CacheStore`; detail
    and season calls always hit the network. The client never retries:
    failures surface as :class:`ProviderUnavailableError` and pacing or
    retry policy belongs to the caller.
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

    async def discover_by_year(
        self, kind: ContentKind, year: int, page: int = 1
    ) -> ProviderListPage:
        """Return one popularity-sorted discovery page for a release year."""

        year_param = "primary_release_year" if kind == "movie" else "first_air_date_year"
        params = {
            year_param: year,
            "sort_by": "popularity.desc",
            "page": page,
        }
        return await self._cached_listing(
            f"/discover/{kind}",
            params,
            ttl_seconds=self._settings.discovery_cache_seconds,
        )

    async def popular(self, kind: ContentKind, page: int = 1) -> ProviderListPage:
        """Return one page of the provider's current popularity listing."""

        return await self._cached_listing(
            f"/{kind}/popular",
            {"page": page},
            ttl_seconds=self._settings.listing_cache_seconds,
        )

    async def get_title_detail(
        self, kind: ContentKind, secondary_external_id: int | str
    ) -> ProviderTitleDetail:
        """Fetch credits, genres, runtime/seasons and external ids for a title."""

        payload = await self._get(
            f"/{kind}/{secondary_external_id}",
            {"append_to_response": "credits,external_ids"},
        )
        return self._parse(ProviderTitleDetail, payload, f"/{kind}/{secondary_external_id}")

    async def get_season_detail(
        self, secondary_external_id: int | str, season_number: int
    ) -> ProviderSeasonDetail:
        endpoint = f"/tv/{secondary_external_id}/season/{season_number}"
        payload = await self._get(endpoint, {"append_to_response": "external_ids"})
        return self._parse(ProviderSeasonDetail, payload, endpoint)

    async def _cached_listing(
        self,
        endpoint: str,
        params: Mapping[str, Any],
        *,
        ttl_seconds: int,
    ) -> ProviderListPage:
        signature = build_request_signature(PROVIDER, endpoint, params)
        entry = await self._cache.get(signature)
        if self._cache.is_fresh(entry, ttl_seconds):
            try:
                listing = ProviderListPage.model_validate(entry.payload)
            except ValidationError:
                logger.warning("Discarding unreadable cache entry %s", signature)
            else:
                listing.from_cache = True
                logger.debug(
                    "Cache hit for %s (%s titles)", signature, len(listing.results)
                )
                return listing

        payload = await self._get(endpoint, params)
        listing = self._parse(ProviderListPage, payload, endpoint)
        await self._cache.put(signature, payload)
        return listing

    async def _get(self, endpoint: str, params: Mapping[str, Any]) -> Any:
        if not self._settings.tmdb_api_key:
            raise ProviderUnavailableError(
                PROVIDER, endpoint, reason="TMDB API key is not configured"
            )
        headers = {"Accept": "application/json"}
        query = dict(params)
        # v4 read access tokens are long JWTs sent as a bearer header; v3 keys
        # are short hex strings sent as a query parameter.
        if len(self._settings.tmdb_api_key) > 40:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_api_key}"
        else:
            query["api_key"] = self._settings.tmdb_api_key

        try:
            response = await self._client.get(endpoint, params=query, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            raise ProviderUnavailableError(
                PROVIDER, endpoint, reason=exc.__class__.__name__
            ) from exc

        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s returned %s: %s",
                endpoint,
                response.status_code,
                response.text[:200],
            )
            raise ProviderUnavailableError(
                PROVIDER, endpoint, status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderPayloadError(
                PROVIDER, endpoint, reason="response was not JSON"
            ) from exc

    @staticmethod
    def _parse(model: type[ModelT], payload: Any, endpoint: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ProviderPayloadError(
                PROVIDER,
                endpoint,
                reason=f"{exc.error_count()} invalid field(s)",
            ) from exc
