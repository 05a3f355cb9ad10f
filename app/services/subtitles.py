"""Estimate which subtitle languages are likely offered for a title."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..models import ContentKind
from ..utils import build_request_signature
from .cache_store import CacheStore
from .errors import ProviderUnavailableError
from .persistence import CatalogRepository
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

COMMON_LANGUAGES: tuple[str, ...] = ("en", "es", "fr")
ADDITIONAL_LANGUAGES: tuple[str, ...] = (
    "de",
    "it",
    "pt",
    "ja",
    "ko",
    "zh",
    "ar",
    "hi",
    "ru",
)

# (minimum popularity, number of additional languages), highest first.
POPULARITY_TIERS: tuple[tuple[float, int], ...] = (
    (50.0, 5),
    (20.0, 3),
    (10.0, 1),
)


def languages_for_popularity(popularity: float | None) -> list[str]:
    """Return the guessed language list for a provider popularity score."""

    languages = list(COMMON_LANGUAGES)
    score = popularity or 0.0
    for minimum, extra in POPULARITY_TIERS:
        if score > minimum:
            languages.extend(ADDITIONAL_LANGUAGES[:extra])
            break
    return languages


class SubtitleEstimator:
    """Popularity-based guess of subtitle availability.

    The playback provider does not publish subtitle tracks, so more popular
    titles are assumed to carry more languages. Guesses are cached for the
    derived-lookup TTL.
    """

    def __init__(
        self,
        settings: Settings,
        metadata: TMDBClient,
        repository: CatalogRepository,
        cache: CacheStore,
    ):
        self._settings = settings
        self._metadata = metadata
        self._repository = repository
        self._cache = cache

    async def available_languages(
        self, kind: ContentKind, external_id: str
    ) -> list[str]:
        signature = build_request_signature("subtitles", f"/{kind}/{external_id}")
        try:
            cached = await self._cache.get_fresh(
                signature, self._settings.derived_cache_seconds
            )
            if isinstance(cached, list) and all(isinstance(code, str) for code in cached):
                return cached

            languages = languages_for_popularity(
                await self._popularity(kind, external_id)
            )
            await self._cache.put(signature, languages)
        except SQLAlchemyError:
            logger.exception("Subtitle lookup for %s %s failed", kind, external_id)
            return list(COMMON_LANGUAGES)
        return languages

    async def _popularity(self, kind: ContentKind, external_id: str) -> float | None:
        record = await self._repository.get_by_external_id(kind, external_id)
        if record is None or not record.secondary_external_id:
            return None
        try:
            detail = await self._metadata.get_title_detail(
                kind, record.secondary_external_id
            )
        except ProviderUnavailableError as exc:
            logger.warning(
                "Could not load popularity for %s %s: %s", kind, external_id, exc
            )
            return None
        return detail.popularity
