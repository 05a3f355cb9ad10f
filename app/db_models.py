"""SQLAlchemy ORM models backing the persistent catalog."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class Movie(Base):
    """A playable movie synchronised from the metadata provider."""

    __tablename__ = "movies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(512))
    external_id: Mapped[str] = mapped_column(String(32), unique=True)
    secondary_external_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True, index=True
    )
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    people_credits: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class TVShow(Base):
    """A series whose seasons are expanded into :class:`Episode` rows."""

    __tablename__ = "tv_shows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(512))
    external_id: Mapped[str] = mapped_column(String(32), unique=True)
    secondary_external_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True, index=True
    )
    # "2010-2022" or "2019-present" for series still airing.
    year: Mapped[str | None] = mapped_column(String(16), nullable=True)
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    season_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    people_credits: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    episodes: Mapped[list["Episode"]] = relationship(
        back_populates="series", cascade="all, delete-orphan"
    )


class Episode(Base):
    """A single playable episode of a :class:`TVShow`."""

    __tablename__ = "episodes"
    __table_args__ = (
        UniqueConstraint(
            "series_id", "season", "episode_number", name="uq_episode_position"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    series_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tv_shows.id", ondelete="CASCADE")
    )
    season: Mapped[int] = mapped_column(Integer)
    episode_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str] = mapped_column(String(512))
    external_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    still_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    runtime: Mapped[int | None] = mapped_column(Integer, nullable=True)
    air_date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    series: Mapped[TVShow] = relationship(back_populates="episodes")


class CacheEntry(Base):
    """Memoised upstream response keyed by its canonical request signature."""

    __tablename__ = "api_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_signature: Mapped[str] = mapped_column(String(1024), unique=True)
    payload: Mapped[Any] = mapped_column(JSON)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
