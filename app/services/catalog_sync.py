"""Turn provider listings into deduplicated, playable catalog rows."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..models import (
    CatalogItemPayload,
    ContentKind,
    EpisodePayload,
    PlaybackListing,
    ProviderEpisode,
    ProviderListItem,
    ProviderListPage,
    ProviderTitleDetail,
)
from ..utils import build_image_url, extract_year, split_names
from .errors import CatalogSyncError, ProviderUnavailableError
from .persistence import CatalogRepository
from .playback import FeedKind, PlaybackProber
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class TitleOutcome(str, enum.Enum):
    """Terminal state of one discovered title."""

    ADDED = "added"
    UPDATED = "updated"
    UNAVAILABLE = "unavailable"
    NO_EXTERNAL_ID = "no-external-id"
    ERROR = "error"


@dataclass(slots=True)
class EpisodeCounts:
    """Running totals for episodes visited during series expansion."""

    added: int = 0
    updated: int = 0
    unavailable: int = 0
    errors: int = 0

    def merge(self, other: "EpisodeCounts") -> None:
        self.added += other.added
        self.updated += other.updated
        self.unavailable += other.unavailable
        self.errors += other.errors

    def to_payload(self) -> dict[str, int]:
        return {
            "added": self.added,
            "updated": self.updated,
            "unavailable": self.unavailable,
            "errors": self.errors,
        }


@dataclass(slots=True)
class SyncCounts:
    """Summary of one sync pass over a page of titles.

    ``unavailable`` covers both titles the playback provider could not serve
    and titles without a resolvable IMDb id, so ``total`` always equals
    ``added + updated + unavailable + errors``.
    """

    added: int = 0
    updated: int = 0
    unavailable: int = 0
    errors: int = 0
    total: int = 0
    from_cache: bool = False
    episodes: EpisodeCounts = field(default_factory=EpisodeCounts)

    def record(self, outcome: TitleOutcome) -> None:
        if outcome is TitleOutcome.ADDED:
            self.added += 1
        elif outcome is TitleOutcome.UPDATED:
            self.updated += 1
        elif outcome is TitleOutcome.ERROR:
            self.errors += 1
        else:
            self.unavailable += 1

    def merge(self, other: "SyncCounts") -> None:
        self.added += other.added
        self.updated += other.updated
        self.unavailable += other.unavailable
        self.errors += other.errors
        self.total += other.total
        self.episodes.merge(other.episodes)

    def to_payload(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "updated": self.updated,
            "unavailable": self.unavailable,
            "errors": self.errors,
            "total": self.total,
            "fromCache": self.from_cache,
            "episodes": self.episodes.to_payload(),
        }


@dataclass(slots=True)
class RefreshSummary:
    """Accumulated counts of a whole-database refresh."""

    movies: SyncCounts = field(default_factory=SyncCounts)
    tv_shows: SyncCounts = field(default_factory=SyncCounts)
    pages_requested: int = 0
    pages_completed: int = 0

    @property
    def completed(self) -> bool:
        return self.pages_completed == self.pages_requested

    def to_payload(self) -> dict[str, Any]:
        return {
            "movies": self.movies.to_payload(),
            "tvShows": self.tv_shows.to_payload(),
            "pagesRequested": self.pages_requested,
            "pagesCompleted": self.pages_completed,
            "completed": self.completed,
        }


class CatalogSyncEngine:
    """Coordinates the metadata client, the prober and the repository.

    Everything runs sequentially in provider order: titles within a page,
    seasons in ascending order, episodes in provider order. A failure while
    processing one title or episode is logged and counted; it never aborts
    the rest of the page.
    """

    def __init__(
        self,
        settings: Settings,
        metadata: TMDBClient,
        prober: PlaybackProber,
        repository: CatalogRepository,
    ):
        self._settings = settings
        self._metadata = metadata
        self._prober = prober
        self._repository = repository

    async def sync_popular(self, kind: ContentKind, page: int = 1) -> SyncCounts:
        """Import one page of the provider's popular titles."""

        listing = await self._metadata.popular(kind, page)
        return await self.process_page(kind, listing, featured_on_import=True)

    async def sync_by_year(
        self, kind: ContentKind, year: int, page: int = 1
    ) -> SyncCounts:
        """Import one discovery page of titles released in ``year``."""

        listing = await self._metadata.discover_by_year(kind, year, page)
        return await self.process_page(kind, listing)

    async def process_page(
        self,
        kind: ContentKind,
        listing: ProviderListPage,
        *,
        featured_on_import: bool = False,
    ) -> SyncCounts:
        """Run every title of ``listing`` through the per-title pipeline.

        Cached pages are processed exactly like fresh ones so availability
        and metadata are re-affirmed on every pass.
        """

        counts = SyncCounts(total=len(listing.results), from_cache=listing.from_cache)
        for item in listing.results:
            outcome = await self.process_title(
                kind, item, counts.episodes, featured_on_import=featured_on_import
            )
            counts.record(outcome)
        logger.info(
            "Synced %s page %s: %s added, %s updated, %s unavailable, %s errors",
            kind,
            listing.page,
            counts.added,
            counts.updated,
            counts.unavailable,
            counts.errors,
        )
        return counts

    async def process_title(
        self,
        kind: ContentKind,
        item: ProviderListItem,
        episode_counts: EpisodeCounts | None = None,
        *,
        featured_on_import: bool = False,
    ) -> TitleOutcome:
        """Resolve, probe and upsert one discovered title (expanding series)."""

        try:
            detail = await self._metadata.get_title_detail(kind, item.id)
        except ProviderUnavailableError as exc:
            logger.warning("Could not resolve %s %s (%s): %s", kind, item.id, item.title, exc)
            return TitleOutcome.ERROR

        external_id = detail.external_id
        if external_id is None:
            logger.info("%s %r has no IMDb id, skipping", kind, item.title or detail.title)
            return TitleOutcome.NO_EXTERNAL_ID

        if kind == "movie":
            available = await self._prober.probe(external_id)
        else:
            available = await self._prober.probe(external_id, season=1, episode=1)
        if not available:
            logger.info(
                "%s %r (%s) is not playable, skipping",
                kind,
                item.title or detail.title,
                external_id,
            )
            return TitleOutcome.UNAVAILABLE

        payload = self._build_item_payload(kind, item, detail)
        featured = (
            featured_on_import
            and payload.rating_value is not None
            and payload.rating_value > self._settings.featured_rating_threshold
        )
        try:
            result = await self._repository.upsert(kind, payload, featured=featured)
        except SQLAlchemyError:
            logger.exception("Failed to store %s %s", kind, external_id)
            return TitleOutcome.ERROR

        if kind == "tv":
            expanded = await self.expand_series(result.record_id, detail)
            if episode_counts is not None:
                episode_counts.merge(expanded)

        return TitleOutcome.ADDED if result.created else TitleOutcome.UPDATED

    async def expand_series(
        self, series_id: int, detail: ProviderTitleDetail
    ) -> EpisodeCounts:
        """Sync seasons ``1..season_count`` of a stored series."""

        counts = EpisodeCounts()
        external_id = detail.external_id
        if external_id is None:
            return counts
        for season_number in range(1, detail.season_count + 1):
            counts.merge(
                await self.sync_season(series_id, detail.id, external_id, season_number)
            )
        return counts

    async def sync_season(
        self,
        series_id: int,
        secondary_external_id: int | str,
        external_id: str,
        season_number: int,
    ) -> EpisodeCounts:
        counts = EpisodeCounts()
        try:
            season = await self._metadata.get_season_detail(
                secondary_external_id, season_number
            )
        except ProviderUnavailableError as exc:
            logger.warning(
                "Could not load season %s of %s: %s", season_number, external_id, exc
            )
            counts.errors += 1
            return counts

        for episode in season.episodes:
            number = episode.episode_number
            if not await self._prober.probe(external_id, season=season_number, episode=number):
                logger.info(
                    "Episode S%02dE%02d of %s is not playable, skipping",
                    season_number,
                    number,
                    external_id,
                )
                counts.unavailable += 1
                continue
            payload = self._build_episode_payload(season_number, episode)
            try:
                result = await self._repository.upsert_episode(series_id, payload)
            except SQLAlchemyError:
                logger.exception(
                    "Failed to store S%02dE%02d of %s", season_number, number, external_id
                )
                counts.errors += 1
                continue
            if result.created:
                counts.added += 1
            else:
                counts.updated += 1
        return counts

    async def refresh(self, pages_to_fetch: int = 1) -> RefreshSummary:
        """Sync popular movies and series for pages ``1..pages_to_fetch``.

        Stops at the first page whose listing cannot be fetched or cached; counts for
        everything processed so far are still returned.
        """

        if pages_to_fetch < 1:
            raise ValueError("pages_to_fetch must be at least 1")

        summary = RefreshSummary(pages_requested=pages_to_fetch)
        for page in range(1, pages_to_fetch + 1):
            try:
                summary.movies.merge(await self.sync_popular("movie", page))
            except (CatalogSyncError, SQLAlchemyError) as exc:
                logger.warning("Refresh stopped at movie page %s: %s", page, exc)
                summary.movies.errors += 1
                break
            try:
                summary.tv_shows.merge(await self.sync_popular("tv", page))
            except (CatalogSyncError, SQLAlchemyError) as exc:
                logger.warning("Refresh stopped at series page %s: %s", page, exc)
                summary.tv_shows.errors += 1
                break
            summary.pages_completed = page
        return summary

    async def sync_latest(self, kind: FeedKind, page: int = 1) -> SyncCounts:
        """Ingest one page of the playback provider's newest additions.

        Feed entries come from the playback provider itself, so they are not
        probed again. Episodes are only attached to series already stored.
        """

        listings = await self._prober.latest(kind, page)
        counts = SyncCounts(total=len(listings))
        for listing in listings:
            if kind == "episode":
                outcome = await self._store_latest_episode(listing)
            else:
                outcome = await self._store_latest_title(kind, listing)
            counts.record(outcome)
        return counts

    async def _store_latest_title(
        self, kind: ContentKind, listing: PlaybackListing
    ) -> TitleOutcome:
        if not listing.imdb_id:
            return TitleOutcome.NO_EXTERNAL_ID
        credit_key = "directors" if kind == "movie" else "creators"
        credit_source = listing.director if kind == "movie" else listing.creator
        payload = CatalogItemPayload(
            title=listing.title or listing.imdb_id,
            external_id=listing.imdb_id,
            secondary_external_id=listing.tmdb_id,
            year=listing.year,
            poster_url=listing.poster,
            synopsis=listing.plot,
            rating_value=listing.rating,
            runtime=listing.runtime,
            season_count=listing.seasons,
            genres=split_names(listing.genre),
            people_credits={
                credit_key: split_names(credit_source),
                "cast": split_names(listing.actors),
            },
        )
        try:
            result = await self._repository.upsert(kind, payload)
        except SQLAlchemyError:
            logger.exception("Failed to store %s %s", kind, listing.imdb_id)
            return TitleOutcome.ERROR
        return TitleOutcome.ADDED if result.created else TitleOutcome.UPDATED

    async def _store_latest_episode(self, listing: PlaybackListing) -> TitleOutcome:
        if not (listing.show_imdb_id and listing.season and listing.episode):
            return TitleOutcome.NO_EXTERNAL_ID
        try:
            series = await self._repository.get_by_external_id("tv", listing.show_imdb_id)
            if series is None:
                logger.info(
                    "Series %s not in catalog, skipping episode", listing.show_imdb_id
                )
                return TitleOutcome.UNAVAILABLE
            payload = EpisodePayload(
                season=listing.season,
                episode_number=listing.episode,
                title=listing.title or f"Episode {listing.episode}",
                external_id=listing.imdb_id,
                synopsis=listing.plot,
                still_url=listing.poster,
                runtime=listing.runtime,
                air_date=listing.air_date,
            )
            result = await self._repository.upsert_episode(series.id, payload)
        except SQLAlchemyError:
            logger.exception(
                "Failed to store episode of %s", listing.show_imdb_id
            )
            return TitleOutcome.ERROR
        return TitleOutcome.ADDED if result.created else TitleOutcome.UPDATED

    def _build_item_payload(
        self,
        kind: ContentKind,
        item: ProviderListItem,
        detail: ProviderTitleDetail,
    ) -> CatalogItemPayload:
        image_base = self._settings.tmdb_image_base_url
        cast = detail.top_cast(self._settings.top_cast_count)
        rating = item.vote_average if item.vote_average is not None else detail.vote_average
        common: dict[str, Any] = {
            "title": detail.title or item.title,
            "external_id": detail.external_id,
            "secondary_external_id": str(detail.id),
            "poster_url": build_image_url(detail.poster_path or item.poster_path, image_base),
            "synopsis": detail.overview or item.overview or None,
            "rating_value": rating,
            "genres": detail.genre_names(),
        }
        if kind == "movie":
            return CatalogItemPayload(
                **common,
                year=extract_year(detail.release_date or item.release_date),
                runtime=detail.runtime or None,
                people_credits={"directors": detail.directors(), "cast": cast},
            )
        return CatalogItemPayload(
            **common,
            year=detail.series_year_label(),
            season_count=detail.season_count or None,
            people_credits={"creators": detail.creators(), "cast": cast},
        )

    def _build_episode_payload(
        self, season_number: int, episode: ProviderEpisode
    ) -> EpisodePayload:
        return EpisodePayload(
            season=season_number,
            episode_number=episode.episode_number,
            title=episode.name or f"Episode {episode.episode_number}",
            external_id=episode.external_ids.imdb_id or None,
            synopsis=episode.overview or None,
            still_url=build_image_url(
                episode.still_path, self._settings.tmdb_image_base_url
            ),
            runtime=episode.runtime or None,
            air_date=episode.air_date or None,
        )

