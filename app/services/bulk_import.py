"""Paced, multi-year imports driven from the admin surface."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, AsyncIterator, Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..models import CONTENT_KINDS, ContentKind, ProviderListPage
from .catalog_sync import CatalogSyncEngine
from .errors import (
    CatalogSyncError,
    ConfirmationRequiredError,
    ImportValidationError,
    ProviderUnavailableError,
)
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

MIN_IMPORT_YEAR = 1900


@dataclass
class ImportProgress:
    """Counters for one bulk import invocation.

    Each run owns its own instance; callers receive copies, so snapshots
    handed out earlier are never mutated afterwards.
    """

    kind: ContentKind
    start_year: int
    end_year: int
    total_years: int
    current_year: int | None = None
    years_completed: int = 0
    processed_count: int = 0
    updated_count: int = 0
    unavailable_count: int = 0
    item_error_count: int = 0
    error_count: int = 0
    is_running: bool = True

    def snapshot(self) -> "ImportProgress":
        return dataclasses.replace(self)

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "startYear": self.start_year,
            "endYear": self.end_year,
            "currentYear": self.current_year,
            "totalYears": self.total_years,
            "yearsCompleted": self.years_completed,
            "processedCount": self.processed_count,
            "updatedCount": self.updated_count,
            "unavailableCount": self.unavailable_count,
            "itemErrorCount": self.item_error_count,
            "errorCount": self.error_count,
            "isRunning": self.is_running,
        }


class BulkImportOrchestrator:
    """Run year-by-year discovery imports with pacing and failure tolerance.

    Years are processed strictly in order. A year that fails is counted and
    skipped after a longer backoff; only the very first discovery call is
    retried, and if it keeps failing the run is aborted before it starts.
    """

    def __init__(
        self,
        settings: Settings,
        engine: CatalogSyncEngine,
        metadata: TMDBClient,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], date] = date.today,
    ):
        self._settings = settings
        self._engine = engine
        self._metadata = metadata
        self._sleep = sleep
        self._today = today

    def validate(
        self,
        kind: str,
        start_year: int,
        end_year: int,
        *,
        confirm: bool = False,
    ) -> int:
        """Check an import request and return the number of years it spans."""

        if kind not in CONTENT_KINDS:
            raise ImportValidationError(f"Unsupported content kind: {kind}")
        current_year = self._today().year
        if start_year < MIN_IMPORT_YEAR:
            raise ImportValidationError(
                f"Start year must be {MIN_IMPORT_YEAR} or later"
            )
        if end_year > current_year:
            raise ImportValidationError(
                f"End year must not be after the current year ({current_year})"
            )
        if start_year > end_year:
            raise ImportValidationError("Start year must not be after end year")
        year_count = end_year - start_year + 1
        threshold = self._settings.import_confirm_threshold
        if year_count > threshold and not confirm:
            raise ConfirmationRequiredError(year_count, threshold)
        return year_count

    async def iter_bulk_import(
        self,
        kind: ContentKind,
        start_year: int,
        end_year: int,
        *,
        confirm: bool = False,
    ) -> AsyncIterator[ImportProgress]:
        """Yield a progress snapshot at start, after every year and at the end."""

        total_years = self.validate(kind, start_year, end_year, confirm=confirm)
        first_listing = await self._initial_discovery(kind, start_year)

        progress = ImportProgress(
            kind=kind,
            start_year=start_year,
            end_year=end_year,
            total_years=total_years,
        )
        logger.info(
            "Starting %s import for %s-%s (%s years)",
            kind,
            start_year,
            end_year,
            total_years,
        )
        yield progress.snapshot()

        try:
            for year in range(start_year, end_year + 1):
                progress.current_year = year
                is_last = year == end_year
                try:
                    if year == start_year:
                        listing = first_listing
                    else:
                        listing = await self._metadata.discover_by_year(kind, year, 1)
                    counts = await self._engine.process_page(kind, listing)
                except (CatalogSyncError, SQLAlchemyError) as exc:
                    progress.error_count += 1
                    progress.years_completed += 1
                    logger.warning("Import of %s %s failed: %s", kind, year, exc)
                    yield progress.snapshot()
                    if not is_last:
                        await self._sleep(self._settings.import_error_backoff_seconds)
                    continue

                progress.processed_count += counts.added
                progress.updated_count += counts.updated
                progress.unavailable_count += counts.unavailable
                progress.item_error_count += counts.errors
                progress.years_completed += 1
                yield progress.snapshot()
                if not is_last:
                    await self._sleep(self._settings.import_pacing_seconds)
        finally:
            progress.is_running = False

        logger.info(
            "Finished %s import for %s-%s: %s added, %s failed years",
            kind,
            start_year,
            end_year,
            progress.processed_count,
            progress.error_count,
        )
        yield progress.snapshot()

    async def bulk_import(
        self,
        kind: ContentKind,
        start_year: int,
        end_year: int,
        *,
        confirm: bool = False,
        on_progress: Callable[[ImportProgress], Any] | None = None,
    ) -> ImportProgress:
        """Run the import to completion and return the final counters."""

        final: ImportProgress | None = None
        async for snapshot in self.iter_bulk_import(
            kind, start_year, end_year, confirm=confirm
        ):
            final = snapshot
            if on_progress is not None:
                on_progress(snapshot)
        if final is None:  # pragma: no cover - the generator always yields
            raise RuntimeError("Bulk import produced no progress")
        return final

    async def _initial_discovery(
        self, kind: ContentKind, year: int
    ) -> ProviderListPage:
        attempts = self._settings.import_initial_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self._metadata.discover_by_year(kind, year, 1)
            except ProviderUnavailableError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Giving up on %s import: %s failed %s times: %s",
                        kind,
                        year,
                        attempts,
                        exc,
                    )
                    raise
                backoff = self._settings.import_error_backoff_seconds * attempt
                logger.info(
                    "Initial discovery for %s %s failed (%s). Retrying in %.1fs",
                    kind,
                    year,
                    exc.__class__.__name__,
                    backoff,
                )
                await self._sleep(backoff)
        raise AssertionError("unreachable")  # pragma: no cover
