from __future__ import annotations

import asyncio
from datetime import datetime

from sqlalchemy import create_engine, inspect, select

from app.database import Database, upsert_row
from app.db_models import CacheEntry


def test_create_all_builds_catalog_schema(tmp_path) -> None:
    """A fresh database should receive every catalog table."""

    database_path = tmp_path / "catalog.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        episode_uniques = {
            constraint["name"]
            for constraint in inspector.get_unique_constraints("episodes")
        }
    finally:
        inspector_engine.dispose()

    assert {"movies", "tv_shows", "episodes", "api_cache"} <= tables
    assert "uq_episode_position" in episode_uniques


def test_upsert_row_updates_in_place(tmp_path) -> None:
    """A second upsert with the same key must update rather than insert."""

    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'upsert.db'}")

    async def runner() -> None:
        await database.create_all()
        try:
            async with database.session() as session:
                first_id = await upsert_row(
                    session,
                    CacheEntry,
                    {
                        "request_signature": "tmdb:/movie/popular?page=1",
                        "payload": {"page": 1},
                        "last_updated": datetime(2024, 1, 1),
                    },
                    conflict_columns=("request_signature",),
                    update_columns=("payload", "last_updated"),
                )
                second_id = await upsert_row(
                    session,
                    CacheEntry,
                    {
                        "request_signature": "tmdb:/movie/popular?page=1",
                        "payload": {"page": 2},
                        "last_updated": datetime(2024, 1, 2),
                    },
                    conflict_columns=("request_signature",),
                    update_columns=("payload", "last_updated"),
                )
                await session.commit()

            async with database.session() as session:
                rows = (await session.execute(select(CacheEntry))).scalars().all()
        finally:
            await database.dispose()

        assert first_id == second_id
        assert len(rows) == 1
        assert rows[0].payload == {"page": 2}
        assert rows[0].last_updated == datetime(2024, 1, 2)

    asyncio.run(runner())
