"""Tests for the admin HTTP routes."""

from __future__ import annotations

import json
from datetime import date

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.config import Settings, settings
from app.main import create_app, register_routes
from app.models import ProviderListPage
from app.services.bulk_import import BulkImportOrchestrator
from app.services.cache_store import CacheStore
from app.services.catalog_sync import CatalogSyncEngine, RefreshSummary, SyncCounts
from app.services.errors import ProviderUnavailableError
from app.services.subtitles import SubtitleEstimator


class DummySyncEngine(CatalogSyncEngine):
    """Minimal engine stub recording the calls routed to it."""

    def __init__(self, *, fail: bool = False) -> None:  # pragma: no cover - nothing to initialise
        # Skip super().__init__ so no upstream clients are needed.
        self.fail = fail
        self.calls: list[tuple[object, ...]] = []

    async def sync_popular(self, kind, page=1):  # type: ignore[override]
        self.calls.append(("popular", kind, page))
        if self.fail:
            raise ProviderUnavailableError("tmdb", f"/{kind}/popular", status_code=503)
        return SyncCounts(added=1, total=1)

    async def sync_by_year(self, kind, year, page=1):  # type: ignore[override]
        self.calls.append(("year", kind, year, page))
        return SyncCounts(updated=2, total=2, from_cache=True)

    async def sync_latest(self, kind, page=1):  # type: ignore[override]
        self.calls.append(("latest", kind, page))
        return SyncCounts(total=0)

    async def refresh(self, pages_to_fetch=1):  # type: ignore[override]
        self.calls.append(("refresh", pages_to_fetch))
        return RefreshSummary(pages_requested=pages_to_fetch, pages_completed=pages_to_fetch)


class DummyMetadata:
    async def discover_by_year(self, kind, year, page=1):
        return ProviderListPage(page=1, results=[{"id": year}])


class DummyCacheStore(CacheStore):
    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        self.pruned: list[float] = []

    async def prune(self, max_age_seconds):  # type: ignore[override]
        self.pruned.append(max_age_seconds)
        return 3


class DummySubtitleEstimator(SubtitleEstimator):
    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        pass

    async def available_languages(self, kind, external_id):  # type: ignore[override]
        return ["en", "es", "fr"]


async def _no_sleep(_: float) -> None:
    return None


def build_app(engine: DummySyncEngine | None = None) -> FastAPI:
    app = FastAPI()
    register_routes(app)
    engine = engine or DummySyncEngine()
    app.state.sync_engine = engine
    app.state.bulk_importer = BulkImportOrchestrator(
        Settings(_env_file=None),
        engine,
        DummyMetadata(),  # type: ignore[arg-type]
        sleep=_no_sleep,
        today=lambda: date(2025, 1, 1),
    )
    app.state.cache_store = DummyCacheStore()
    app.state.subtitle_estimator = DummySubtitleEstimator()
    return app


class ImportingEngine(DummySyncEngine):
    async def process_page(self, kind, listing, *, featured_on_import=False):  # type: ignore[override]
        return SyncCounts(added=len(listing.results), total=len(listing.results))


def test_sync_popular_returns_counts() -> None:
    engine = DummySyncEngine()
    with TestClient(build_app(engine)) as client:
        response = client.post("/api/admin/sync/movie/popular?page=2")

    assert response.status_code == 200
    assert response.json()["added"] == 1
    assert engine.calls == [("popular", "movie", 2)]


def test_sync_year_route() -> None:
    engine = DummySyncEngine()
    with TestClient(build_app(engine)) as client:
        response = client.post("/api/admin/sync/tv/year/2019")

    assert response.status_code == 200
    assert response.json()["fromCache"] is True
    assert engine.calls == [("year", "tv", 2019, 1)]


def test_unknown_kind_is_rejected() -> None:
    with TestClient(build_app()) as client:
        response = client.post("/api/admin/sync/anime/popular")
        latest = client.post("/api/admin/sync/episode/latest")

    assert response.status_code == 400
    assert latest.status_code == 200


def test_provider_failure_maps_to_bad_gateway() -> None:
    with TestClient(build_app(DummySyncEngine(fail=True))) as client:
        response = client.post("/api/admin/sync/movie/popular")

    assert response.status_code == 502
    assert response.json()["detail"]["error"] == "provider_unavailable"


def test_refresh_content_route() -> None:
    engine = DummySyncEngine()
    with TestClient(build_app(engine)) as client:
        response = client.post("/api/admin/refresh-content?pages=3")
        rejected = client.post("/api/admin/refresh-content?pages=0")

    assert response.status_code == 200
    assert response.json()["pagesCompleted"] == 3
    assert engine.calls == [("refresh", 3)]
    assert rejected.status_code == 422


def test_bulk_import_validation_and_confirmation() -> None:
    with TestClient(build_app(ImportingEngine())) as client:
        invalid = client.post(
            "/api/admin/bulk-import", json={"kind": "movie", "startYear": 1899, "endYear": 1905}
        )
        unconfirmed = client.post(
            "/api/admin/bulk-import", json={"kind": "movie", "startYear": 2010, "endYear": 2020}
        )
        malformed = client.post("/api/admin/bulk-import", json={"kind": "movie"})

    assert invalid.status_code == 400
    assert unconfirmed.status_code == 409
    assert unconfirmed.json()["detail"]["yearCount"] == 11
    assert malformed.status_code == 400


def test_bulk_import_returns_final_progress() -> None:
    with TestClient(build_app(ImportingEngine())) as client:
        response = client.post(
            "/api/admin/bulk-import",
            json={"kind": "tv", "startYear": 2020, "endYear": 2022},
        )

    assert response.status_code == 200
    payload = response.json()
    assert payload["processedCount"] == 3
    assert payload["yearsCompleted"] == 3
    assert payload["isRunning"] is False


def test_bulk_import_streams_ndjson_progress() -> None:
    with TestClient(build_app(ImportingEngine())) as client:
        response = client.post(
            "/api/admin/bulk-import",
            json={"kind": "movie", "startYear": 2023, "endYear": 2024, "stream": True},
        )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert [line["yearsCompleted"] for line in lines] == [0, 1, 2, 2]
    assert lines[-1]["isRunning"] is False


def test_cache_prune_and_subtitles_routes() -> None:
    app = build_app()
    with TestClient(app) as client:
        pruned = client.post("/api/admin/cache/prune?maxAge=60")
        subtitles = client.get("/api/subtitles/movie/tt0113277")

    assert pruned.json() == {"removed": 3}
    assert app.state.cache_store.pruned == [60]
    assert subtitles.json() == {
        "imdbId": "tt0113277",
        "kind": "movie",
        "languages": ["en", "es", "fr"],
    }


def test_application_lifespan_initialises_services(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setattr(settings, "tmdb_api_key", None)

    app = create_app()
    with TestClient(app) as client:
        health = client.get("/healthz")
        response = client.post("/api/admin/sync/movie/popular")

    assert health.json() == {"status": "ok"}
    assert response.status_code == 502


class LockedMetadata:
    async def discover_by_year(self, kind, year, page=1):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


def test_bulk_import_stream_reports_storage_failure() -> None:
    app = build_app(ImportingEngine())
    app.state.bulk_importer = BulkImportOrchestrator(
        Settings(_env_file=None),
        app.state.sync_engine,
        LockedMetadata(),  # type: ignore[arg-type]
        sleep=_no_sleep,
        today=lambda: date(2025, 1, 1),
    )
    with TestClient(app) as client:
        response = client.post(
            "/api/admin/bulk-import",
            json={"kind": "movie", "startYear": 2023, "endYear": 2024, "stream": True},
        )

    assert response.status_code == 200
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert len(lines) == 1
    assert lines[0]["error"] == "storage_error"
    assert "database is locked" in lines[0]["description"]
