"""Lookup and upsert operations for movies, series and episodes."""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import upsert_row
from ..db_models import Episode, Movie, TVShow
from ..models import CatalogItemPayload, ContentKind, EpisodePayload
from ..utils import extract_year

CatalogRecord = Movie | TVShow

MODEL_BY_KIND: dict[str, type[Movie] | type[TVShow]] = {
    "movie": Movie,
    "tv": TVShow,
}

# Fields refreshed on every sync; curation flags are never touched.
MOVIE_MUTABLE_FIELDS = (
    "title",
    "secondary_external_id",
    "year",
    "poster_url",
    "synopsis",
    "rating_value",
    "runtime",
    "genres",
    "people_credits",
    "last_updated",
)
TV_MUTABLE_FIELDS = (
    "title",
    "secondary_external_id",
    "year",
    "poster_url",
    "synopsis",
    "rating_value",
    "season_count",
    "genres",
    "people_credits",
    "last_updated",
)
EPISODE_MUTABLE_FIELDS = (
    "title",
    "external_id",
    "synopsis",
    "still_url",
    "runtime",
    "air_date",
    "last_updated",
)


@dataclass(slots=True)
class UpsertResult:
    """Outcome of an insert-or-update keyed by an external identifier."""

    record_id: int
    created: bool


class CatalogRepository:
    """Persistence gateway used by the sync engine.

    Upserts are issued as a single atomic statement and additionally
    serialised per external id inside this process, so overlapping syncs of
    the same title can neither duplicate rows nor miscount added/updated.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._locks: weakref.WeakValueDictionary[tuple[Any, ...], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @staticmethod
    def model_for(kind: ContentKind) -> type[Movie] | type[TVShow]:
        try:
            return MODEL_BY_KIND[kind]
        except KeyError as exc:
            raise ValueError(f"Unsupported content kind: {kind}") from exc

    async def get_by_external_id(
        self, kind: ContentKind, external_id: str
    ) -> CatalogRecord | None:
        model = self.model_for(kind)
        async with self._session_factory() as session:
            result = await session.execute(
                select(model).where(model.external_id == external_id)
            )
            return result.scalar_one_or_none()

    async def get_by_secondary_id(
        self, kind: ContentKind, secondary_external_id: str
    ) -> CatalogRecord | None:
        model = self.model_for(kind)
        async with self._session_factory() as session:
            result = await session.execute(
                select(model)
                .where(model.secondary_external_id == secondary_external_id)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get(self, kind: ContentKind, record_id: int) -> CatalogRecord | None:
        async with self._session_factory() as session:
            return await session.get(self.model_for(kind), record_id)

    async def create(
        self,
        kind: ContentKind,
        payload: CatalogItemPayload,
        *,
        featured: bool = False,
    ) -> CatalogRecord:
        """Insert a new row; raises ``IntegrityError`` if the id already exists."""

        model = self.model_for(kind)
        values = self._item_values(kind, payload)
        now = values["last_updated"]
        record = model(
            **values,
            is_featured=featured,
            is_visible=True,
            created_at=now,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
        return record

    async def update(
        self, kind: ContentKind, record_id: int, payload: CatalogItemPayload
    ) -> CatalogRecord:
        """Refresh the mutable fields of an existing row."""

        model = self.model_for(kind)
        values = self._item_values(kind, payload)
        fields = MOVIE_MUTABLE_FIELDS if kind == "movie" else TV_MUTABLE_FIELDS
        async with self._session_factory() as session:
            record = await session.get(model, record_id)
            if record is None:
                raise LookupError(f"{kind} {record_id} does not exist")
            for name in fields:
                setattr(record, name, values[name])
            await session.commit()
        return record

    async def upsert(
        self,
        kind: ContentKind,
        payload: CatalogItemPayload,
        *,
        featured: bool = False,
    ) -> UpsertResult:
        """Create the row for ``payload.external_id`` or refresh the existing one.

        ``featured`` only applies when the row is created.
        """

        model = self.model_for(kind)
        fields = MOVIE_MUTABLE_FIELDS if kind == "movie" else TV_MUTABLE_FIELDS
        values = self._item_values(kind, payload)
        insert_values = {
            **values,
            "is_featured": featured,
            "is_visible": True,
            "created_at": values["last_updated"],
        }
        async with self._lock_for(kind, payload.external_id):
            async with self._session_factory() as session:
                existing = await session.execute(
                    select(model.id).where(model.external_id == payload.external_id)
                )
                created = existing.scalar_one_or_none() is None
                record_id = await upsert_row(
                    session,
                    model,
                    insert_values,
                    conflict_columns=("external_id",),
                    update_columns=fields,
                )
                await session.commit()
        return UpsertResult(record_id=record_id, created=created)

    async def get_episode(
        self, series_id: int, season: int, episode_number: int
    ) -> Episode | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Episode).where(
                    Episode.series_id == series_id,
                    Episode.season == season,
                    Episode.episode_number == episode_number,
                )
            )
            return result.scalar_one_or_none()

    async def list_episodes(
        self, series_id: int, season: int | None = None
    ) -> list[Episode]:
        stmt = select(Episode).where(Episode.series_id == series_id)
        if season is not None:
            stmt = stmt.where(Episode.season == season)
        stmt = stmt.order_by(Episode.season, Episode.episode_number)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def upsert_episode(
        self, series_id: int, payload: EpisodePayload
    ) -> UpsertResult:
        """Create or refresh the episode at ``(series, season, episode)``."""

        now = self._clock()
        values = {
            "series_id": series_id,
            "season": payload.season,
            "episode_number": payload.episode_number,
            "title": payload.title,
            "external_id": payload.external_id,
            "synopsis": payload.synopsis,
            "still_url": payload.still_url,
            "runtime": payload.runtime,
            "air_date": payload.air_date,
            "created_at": now,
            "last_updated": now,
        }
        key = ("episode", series_id, payload.season, payload.episode_number)
        async with self._lock_for(*key):
            async with self._session_factory() as session:
                existing = await session.execute(
                    select(Episode.id).where(
                        Episode.series_id == series_id,
                        Episode.season == payload.season,
                        Episode.episode_number == payload.episode_number,
                    )
                )
                created = existing.scalar_one_or_none() is None
                record_id = await upsert_row(
                    session,
                    Episode,
                    values,
                    conflict_columns=("series_id", "season", "episode_number"),
                    update_columns=EPISODE_MUTABLE_FIELDS,
                )
                await session.commit()
        return UpsertResult(record_id=record_id, created=created)

    async def count(self, kind: ContentKind) -> int:
        model = self.model_for(kind)
        async with self._session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return int(result.scalar_one())

    async def count_episodes(self, series_id: int | None = None) -> int:
        stmt = select(func.count()).select_from(Episode)
        if series_id is not None:
            stmt = stmt.where(Episode.series_id == series_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    def _lock_for(self, *key: Any) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _item_values(
        self, kind: ContentKind, payload: CatalogItemPayload
    ) -> dict[str, Any]:
        values: dict[str, Any] = {
            "title": payload.title,
            "external_id": payload.external_id,
            "secondary_external_id": payload.secondary_external_id,
            "poster_url": payload.poster_url,
            "synopsis": payload.synopsis,
            "rating_value": payload.rating_value,
            "genres": list(payload.genres),
            "people_credits": dict(payload.people_credits),
            "last_updated": self._clock(),
        }
        if kind == "movie":
            values["year"] = extract_year(payload.year)
            values["runtime"] = payload.runtime
        else:
            values["year"] = str(payload.year) if payload.year is not None else None
            values["season_count"] = payload.season_count
        return values
