"""Entry point for the ReelVault catalog synchronisation service."""

from __future__ import annotations
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import Database
from .models import CONTENT_KINDS, ContentKind
from .services.bulk_import import BulkImportOrchestrator
from .services.cache_store import CacheStore
from .services.catalog_sync import CatalogSyncEngine
from .services.errors import (
    ConfirmationRequiredError,
    ImportValidationError,
    ProviderUnavailableError,
)
from .services.persistence import CatalogRepository
from .services.playback import PlaybackProber
from .services.subtitles import SubtitleEstimator
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class BulkImportRequest(BaseModel):
    """Body accepted by the bulk import route."""

    model_config = ConfigDict(populate_by_name=True)

    kind: ContentKind
    start_year: int = Field(alias="startYear")
    end_year: int = Field(alias="endYear")
    confirm: bool = False
    stream: bool = False


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url).rstrip("/") + "/",
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    playback_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    cache = CacheStore(database.session_factory)
    repository = CatalogRepository(database.session_factory)
    metadata = TMDBClient(settings, tmdb_http_client, cache)
    prober = PlaybackProber(settings, playback_http_client, cache)
    engine = CatalogSyncEngine(settings, metadata, prober, repository)

    fastapi_app.state.database = database
    fastapi_app.state.cache_store = cache
    fastapi_app.state.sync_engine = engine
    fastapi_app.state.bulk_importer = BulkImportOrchestrator(settings, engine, metadata)
    fastapi_app.state.subtitle_estimator = SubtitleEstimator(
        settings, metadata, repository, cache
    )

    if not settings.tmdb_api_key:
        logger.warning("TMDB_API_KEY is not set; sync routes will answer 502")
    await cache.prune(settings.cache_max_age_seconds)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Keeps a streaming catalog in sync with TMDB and the playback provider",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_sync_engine(app: FastAPI) -> CatalogSyncEngine:
    engine = getattr(app.state, "sync_engine", None)
    if not isinstance(engine, CatalogSyncEngine):
        raise RuntimeError("Sync engine not initialised")
    return engine


def get_bulk_importer(app: FastAPI) -> BulkImportOrchestrator:
    importer = getattr(app.state, "bulk_importer", None)
    if not isinstance(importer, BulkImportOrchestrator):
        raise RuntimeError("Bulk importer not initialised")
    return importer


def get_cache_store(app: FastAPI) -> CacheStore:
    cache = getattr(app.state, "cache_store", None)
    if not isinstance(cache, CacheStore):
        raise RuntimeError("Cache store not initialised")
    return cache


def get_subtitle_estimator(app: FastAPI) -> SubtitleEstimator:
    estimator = getattr(app.state, "subtitle_estimator", None)
    if not isinstance(estimator, SubtitleEstimator):
        raise RuntimeError("Subtitle estimator not initialised")
    return estimator


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/admin/sync/{kind}/popular")
    async def sync_popular(kind: str, page: int = Query(1, ge=1)) -> JSONResponse:
        engine = get_sync_engine(fastapi_app)
        content_kind = _require_kind(kind)
        try:
            counts = await engine.sync_popular(content_kind, page)
        except ProviderUnavailableError as exc:
            raise _provider_error(exc) from exc
        return JSONResponse(counts.to_payload())

    @fastapi_app.post("/api/admin/sync/{kind}/year/{year}")
    async def sync_year(
        kind: str, year: int, page: int = Query(1, ge=1)
    ) -> JSONResponse:
        engine = get_sync_engine(fastapi_app)
        content_kind = _require_kind(kind)
        try:
            counts = await engine.sync_by_year(content_kind, year, page)
        except ProviderUnavailableError as exc:
            raise _provider_error(exc) from exc
        return JSONResponse(counts.to_payload())

    @fastapi_app.post("/api/admin/sync/{kind}/latest")
    async def sync_latest(kind: str, page: int = Query(1, ge=1)) -> JSONResponse:
        if kind not in {"movie", "tv", "episode"}:
            raise HTTPException(status_code=400, detail="Unsupported content kind")
        engine = get_sync_engine(fastapi_app)
        try:
            counts = await engine.sync_latest(kind, page)  # type: ignore[arg-type]
        except ProviderUnavailableError as exc:
            raise _provider_error(exc) from exc
        return JSONResponse(counts.to_payload())

    @fastapi_app.post("/api/admin/refresh-content")
    async def refresh_content(pages: int = Query(1, ge=1, le=50)) -> JSONResponse:
        engine = get_sync_engine(fastapi_app)
        summary = await engine.refresh(pages)
        return JSONResponse(summary.to_payload())

    @fastapi_app.post("/api/admin/bulk-import")
    async def bulk_import(request: Request):
        importer = get_bulk_importer(fastapi_app)
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        try:
            body = BulkImportRequest.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=400, detail=exc.errors(include_url=False)
            ) from exc

        # Validate eagerly so a streamed response never starts with an error.
        try:
            importer.validate(
                body.kind, body.start_year, body.end_year, confirm=body.confirm
            )
        except ConfirmationRequiredError as exc:
            raise HTTPException(
                status_code=409,
                detail={
                    "error": "confirmation_required",
                    "description": str(exc),
                    "yearCount": exc.year_count,
                },
            ) from exc
        except ImportValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        progress_stream = importer.iter_bulk_import(
            body.kind, body.start_year, body.end_year, confirm=body.confirm
        )
        if body.stream:
            return StreamingResponse(
                _ndjson_lines(progress_stream),
                media_type="application/x-ndjson",
            )

        final: dict[str, Any] = {}
        try:
            async for snapshot in progress_stream:
                final = snapshot.to_payload()
        except ProviderUnavailableError as exc:
            raise _provider_error(exc) from exc
        return JSONResponse(final)

    @fastapi_app.post("/api/admin/cache/prune")
    async def prune_cache(
        max_age: int | None = Query(None, alias="maxAge", ge=0)
    ) -> dict[str, int]:
        cache = get_cache_store(fastapi_app)
        age = max_age if max_age is not None else settings.cache_max_age_seconds
        removed = await cache.prune(age)
        return {"removed": removed}

    @fastapi_app.get("/api/subtitles/{kind}/{imdb_id}")
    async def subtitles(kind: str, imdb_id: str) -> dict[str, Any]:
        estimator = get_subtitle_estimator(fastapi_app)
        content_kind = _require_kind(kind)
        languages = await estimator.available_languages(content_kind, imdb_id)
        return {"imdbId": imdb_id, "kind": content_kind, "languages": languages}


def _require_kind(kind: str) -> ContentKind:
    if kind not in CONTENT_KINDS:
        raise HTTPException(status_code=400, detail="Unsupported content kind")
    return kind  # type: ignore[return-value]


def _provider_error(exc: ProviderUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={
            "error": "provider_unavailable",
            "provider": exc.provider,
            "description": str(exc),
        },
    )


async def _ndjson_lines(progress_stream: AsyncIterator[Any]) -> AsyncIterator[str]:
    try:
        async for snapshot in progress_stream:
            yield json.dumps(snapshot.to_payload()) + "\n"
    except ProviderUnavailableError as exc:
        logger.warning("Streamed bulk import aborted: %s", exc)
        yield json.dumps({"error": "provider_unavailable", "description": str(exc)}) + "\n"
    except SQLAlchemyError as exc:
        logger.exception("Streamed bulk import aborted by a database error")
        yield json.dumps({"error": "storage_error", "description": str(exc)}) + "\n"


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
