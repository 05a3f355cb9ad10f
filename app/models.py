"""Pydantic models describing provider payloads and catalog writes."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import dedupe_strings, extract_year

ContentKind = Literal["movie", "tv"]
CONTENT_KINDS: tuple[ContentKind, ...] = ("movie", "tv")


class ProviderModel(BaseModel):
    """Base for upstream payloads: unknown keys are ignored, known keys are checked."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderListItem(ProviderModel):
    """One entry of a discovery or popularity listing."""

    id: int
    title: str = Field(
        default="",
        validation_alias=AliasChoices("title", "name", "original_title", "original_name"),
    )
    overview: str | None = None
    poster_path: str | None = None
    vote_average: float | None = None
    release_date: str | None = Field(
        default=None, validation_alias=AliasChoices("release_date", "first_air_date")
    )

    @property
    def year(self) -> int | None:
        return extract_year(self.release_date)


class ProviderListPage(ProviderModel):
    """A page of titles returned by the metadata provider."""

    page: int = 1
    results: list[ProviderListItem]
    total_pages: int | None = None
    total_results: int | None = None
    from_cache: bool = Field(default=False, exclude=True)

    def __len__(self) -> int:
        return len(self.results)


class ProviderGenre(ProviderModel):
    id: int | None = None
    name: str


class ProviderPerson(ProviderModel):
    name: str
    job: str | None = None
    order: int | None = None


class ProviderCredits(ProviderModel):
    cast: list[ProviderPerson] = Field(default_factory=list)
    crew: list[ProviderPerson] = Field(default_factory=list)


class ProviderExternalIds(ProviderModel):
    imdb_id: str | None = None


class ProviderTitleDetail(ProviderModel):
    """Full detail for a movie or series, including cross-provider identifiers."""

    id: int
    title: str = Field(
        default="",
        validation_alias=AliasChoices("title", "name", "original_title", "original_name"),
    )
    overview: str | None = None
    poster_path: str | None = None
    vote_average: float | None = None
    popularity: float | None = None
    runtime: int | None = None
    imdb_id: str | None = None
    genres: list[ProviderGenre] = Field(default_factory=list)
    credits: ProviderCredits = Field(default_factory=ProviderCredits)
    external_ids: ProviderExternalIds = Field(default_factory=ProviderExternalIds)
    created_by: list[ProviderPerson] = Field(default_factory=list)
    number_of_seasons: int | None = None
    release_date: str | None = None
    first_air_date: str | None = None
    last_air_date: str | None = None
    status: str | None = None

    @field_validator("imdb_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def external_id(self) -> str | None:
        """Return the IMDb identifier, wherever the provider put it."""

        candidate = self.external_ids.imdb_id or self.imdb_id
        if candidate and candidate.strip():
            return candidate.strip()
        return None

    @property
    def season_count(self) -> int:
        return max(self.number_of_seasons or 0, 0)

    def genre_names(self) -> list[str]:
        return dedupe_strings(genre.name for genre in self.genres)

    def directors(self) -> list[str]:
        return dedupe_strings(
            person.name for person in self.credits.crew if person.job == "Director"
        )

    def creators(self) -> list[str]:
        return dedupe_strings(person.name for person in self.created_by)

    def top_cast(self, limit: int) -> list[str]:
        return dedupe_strings(person.name for person in self.credits.cast[:limit])

    def series_year_label(self) -> str | None:
        """Return ``2010-2022`` for ended series and ``2019-present`` otherwise."""

        start = extract_year(self.first_air_date)
        if start is None:
            return None
        if self.status != "Ended":
            return f"{start}-present"
        end = extract_year(self.last_air_date)
        if end is None or end == start:
            return str(start)
        return f"{start}-{end}"


class ProviderEpisode(ProviderModel):
    episode_number: int = Field(gt=0)
    name: str | None = None
    overview: str | None = None
    still_path: str | None = None
    runtime: int | None = None
    air_date: str | None = None
    external_ids: ProviderExternalIds = Field(default_factory=ProviderExternalIds)


class ProviderSeasonDetail(ProviderModel):
    """Episode list for one season of a series."""

    season_number: int = Field(ge=0)
    episodes: list[ProviderEpisode] = Field(default_factory=list)


class PlaybackListing(ProviderModel):
    """An entry from one of the playback provider's "latest" feeds."""

    title: str = ""
    imdb_id: str | None = None
    tmdb_id: str | None = None
    year: str | None = None
    poster: str | None = None
    plot: str | None = None
    rating: float | None = None
    runtime: int | None = None
    genre: str | None = None
    director: str | None = None
    creator: str | None = None
    actors: str | None = None
    seasons: int | None = None
    show_imdb_id: str | None = None
    season: int | None = Field(default=None, gt=0)
    episode: int | None = Field(default=None, gt=0)
    air_date: str | None = None

    @field_validator("tmdb_id", "year", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> object:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("rating", "runtime", "seasons", mode="before")
    @classmethod
    def _coerce_number(cls, value: object) -> object:
        if value in (None, "", "N/A"):
            return None
        if isinstance(value, str):
            digits = value.strip().split(" ", 1)[0]
            try:
                return float(digits)
            except ValueError:
                return None
        return value


class CatalogItemPayload(BaseModel):
    """Normalised values written for a movie or series row."""

    title: str
    external_id: str
    secondary_external_id: str | None = None
    year: int | str | None = None
    poster_url: str | None = None
    synopsis: str | None = None
    rating_value: float | None = None
    runtime: int | None = None
    season_count: int | None = None
    genres: list[str] = Field(default_factory=list)
    people_credits: dict[str, Any] = Field(default_factory=dict)


class EpisodePayload(BaseModel):
    """Normalised values written for an episode row."""

    season: int = Field(gt=0)
    episode_number: int = Field(gt=0)
    title: str
    external_id: str | None = None
    synopsis: str | None = None
    still_url: str | None = None
    runtime: int | None = None
    air_date: str | None = None
