"""Pydantic models describing canonical catalog records and view snapshots."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .utils import format_air_date, format_people, format_runtime

SeasonId = Union[int, float, str]
ScopeStatus = Literal["idle", "loading", "ready", "failed"]


class Rating(BaseModel):
    """Aggregate rating reported by the upstream catalog."""

    model_config = ConfigDict(frozen=True)

    score: float
    vote_count: int | None = None

    def label(self) -> str:
        if self.vote_count:
            return f"{self.score:g}/10 ({self.vote_count:,})"
        return f"{self.score:g}/10"


class Title(BaseModel):
    """Canonical view of a title detail payload."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_title: str
    image_url: str
    year: int | None = None
    runtime_minutes: int | None = None
    rating: Rating | None = None
    plot: str | None = None
    title_type: str | None = None
    genres: list[str] = Field(default_factory=list)
    directors: list[str] = Field(default_factory=list)
    writers: list[str] = Field(default_factory=list)
    stars: list[str] = Field(default_factory=list)

    def meta_line(self) -> str:
        """Return the ``year • runtime • rating`` summary shown under the title."""

        parts: list[str] = []
        if self.year:
            parts.append(str(self.year))
        runtime = format_runtime(self.runtime_minutes)
        if runtime:
            parts.append(runtime)
        if self.rating is not None:
            parts.append(self.rating.label())
        return " • ".join(parts)

    def to_payload(self) -> dict[str, object]:
        payload = self.model_dump()
        payload["meta_line"] = self.meta_line()
        payload["credits"] = {
            "directors": format_people(self.directors),
            "writers": format_people(self.writers),
            "stars": format_people(self.stars),
        }
        return payload


class Episode(BaseModel):
    """Canonical episode record; ``id`` is unique within a season list."""

    model_config = ConfigDict(frozen=True)

    id: str
    season_number: int | float | None = None
    episode_number: int = 0
    title: str = "Untitled"
    image_url: str | None = None
    air_date_iso: str | None = None
    runtime_minutes: int | None = None
    plot: str | None = None
    rating: Rating | None = None

    def to_payload(self) -> dict[str, object]:
        payload = self.model_dump()
        payload["air_date_label"] = format_air_date(self.air_date_iso)
        payload["runtime_label"] = format_runtime(self.runtime_minutes)
        return payload


class DetailSnapshot(BaseModel):
    status: ScopeStatus = "idle"
    title: Title | None = None
    error: str | None = None


class SeasonIndexSnapshot(BaseModel):
    status: ScopeStatus = "idle"
    seasons: list[SeasonId] = Field(default_factory=list)
    error: str | None = None


class SeasonEntrySnapshot(BaseModel):
    """Read-only copy of one season's cache entry."""

    season_id: SeasonId
    items: list[Episode] = Field(default_factory=list)
    next_page_cursor: str | None = None
    has_more: bool = False
    loading: bool = False
    error: str | None = None
    fetched_once: bool = False


class BrowserSnapshot(BaseModel):
    """Everything a presentation layer needs to render one title view."""

    title_id: str | None = None
    phase: str
    detail: DetailSnapshot
    season_index: SeasonIndexSnapshot
    active_season: SeasonId | None = None
    active_entry: SeasonEntrySnapshot | None = None
    location: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload = self.model_dump(exclude={"detail", "active_entry"})
        detail = self.detail.model_dump(exclude={"title"})
        detail["title"] = self.detail.title.to_payload() if self.detail.title else None
        payload["detail"] = detail
        if self.active_entry is None:
            payload["active_entry"] = None
        else:
            entry = self.active_entry.model_dump(exclude={"items"})
            entry["items"] = [item.to_payload() for item in self.active_entry.items]
            payload["active_entry"] = entry
        return payload


class SeasonGroup(BaseModel):
    """One bin of the grouping endpoint."""

    season_number: int | float
    episodes: list[Episode] = Field(default_factory=list)
    episode_count: int = 0


class TitlePage(BaseModel):
    """One page of the title listing."""

    items: list[Title] = Field(default_factory=list)
    next_page_token: str | None = None
