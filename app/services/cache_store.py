"""Keyed store memoising upstream responses by request signature."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import upsert_row
from ..db_models import CacheEntry

logger = logging.getLogger(__name__)


class CacheStore:
    """Read-through cache backed by the ``api_cache`` table.

    The store only records when a payload was written. Freshness is a
    caller decision made with :meth:`is_fresh` against an endpoint-specific
    TTL, so the same entry can be trusted by one caller and ignored by
    another.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, signature: str) -> CacheEntry | None:
        """Return the entry stored for ``signature`` regardless of age."""

        async with self._session_factory() as session:
            result = await session.execute(
                select(CacheEntry).where(CacheEntry.request_signature == signature)
            )
            return result.scalar_one_or_none()

    async def put(self, signature: str, payload: Any) -> CacheEntry:
        """Store ``payload`` under ``signature``, overwriting any previous entry."""

        now = self._clock()
        async with self._session_factory() as session:
            entry_id = await upsert_row(
                session,
                CacheEntry,
                {
                    "request_signature": signature,
                    "payload": payload,
                    "last_updated": now,
                },
                conflict_columns=("request_signature",),
                update_columns=("payload", "last_updated"),
            )
            await session.commit()
            entry = await session.get(CacheEntry, entry_id, populate_existing=True)
        if entry is None:  # pragma: no cover - row written in the same session
            raise LookupError(f"Cache entry for {signature} vanished after write")
        return entry

    def is_fresh(
        self,
        entry: CacheEntry | None,
        ttl_seconds: float,
        *,
        now: datetime | None = None,
    ) -> bool:
        """Return whether ``entry`` was written less than ``ttl_seconds`` ago."""

        if entry is None:
            return False
        current = now if now is not None else self._clock()
        return current - entry.last_updated < timedelta(seconds=ttl_seconds)

    async def get_fresh(self, signature: str, ttl_seconds: float) -> Any | None:
        """Return the cached payload for ``signature`` if it is still fresh."""

        entry = await self.get(signature)
        if not self.is_fresh(entry, ttl_seconds):
            return None
        return entry.payload

    async def prune(self, max_age_seconds: float) -> int:
        """Delete entries older than ``max_age_seconds`` and return how many went."""

        cutoff = self._clock() - timedelta(seconds=max_age_seconds)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(CacheEntry).where(CacheEntry.last_updated <= cutoff)
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Pruned %s cache entries older than %s", removed, cutoff)
        return removed
