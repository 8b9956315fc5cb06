"""Per-title cache holding the detail, season index and per-season episode scopes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..models import (
    DetailSnapshot,
    Episode,
    ScopeStatus,
    SeasonEntrySnapshot,
    SeasonId,
    SeasonIndexSnapshot,
    Title,
)
from ..normalizer import (
    extract_episode_page,
    normalize_episode,
    normalize_season_list,
    normalize_title,
    unwrap_results,
)
from .coordinator import RequestCoordinator, RequestKey, Scope, Ticket
from .upstream import NotFoundError, TransportError, UpstreamClient

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


@dataclass(slots=True)
class DetailScope:
    status: ScopeStatus = "idle"
    title: Title | None = None
    error: str | None = None


@dataclass(slots=True)
class SeasonIndexScope:
    status: ScopeStatus = "idle"
    seasons: list[SeasonId] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class SeasonCacheEntry:
    """Accumulated episode pages for one season.

    ``items`` only grows while the title stays selected. ``pending_cursor``
    holds the cursor of the request in flight, or of the one that failed, so a
    retry asks for the same page again.
    """

    items: list[Episode] = field(default_factory=list)
    next_page_cursor: str | None = None
    has_more: bool = False
    loading: bool = False
    error: str | None = None
    fetched_once: bool = False
    pending_cursor: str | None = None

    @property
    def status(self) -> ScopeStatus:
        if self.loading:
            return "loading"
        if self.error is not None:
            return "failed"
        if self.fetched_once:
            return "ready"
        return "idle"

    def retry_cursor(self) -> str | None:
        if self.error is not None:
            return self.pending_cursor
        return self.next_page_cursor if self.fetched_once else None


class ScopedCache:
    """Cache for one title selection, replaced wholesale by :meth:`reset`."""

    def __init__(
        self,
        upstream: UpstreamClient,
        coordinator: RequestCoordinator,
        *,
        page_size: int | None = None,
    ) -> None:
        self._upstream = upstream
        self._coordinator = coordinator
        self._page_size = page_size or upstream.page_size
        self._listeners: list[Listener] = []
        self.title_id: str | None = None
        self.detail = DetailScope()
        self.season_index = SeasonIndexScope()
        self.seasons: dict[SeasonId, SeasonCacheEntry] = {}

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def _is_active(self, title_id: str) -> bool:
        if title_id == self.title_id:
            return True
        logger.debug("Ignoring load for inactive title %s (active: %s)", title_id, self.title_id)
        return False

    def reset(self, title_id: str | None) -> None:
        """Drop every scope and abort all requests of the previous title."""

        previous = self.title_id
        if previous is not None:
            aborted = self._coordinator.supersede_title(previous)
            if aborted:
                logger.debug("Aborted %s in-flight requests for %s", aborted, previous)
        self.title_id = title_id
        self.detail = DetailScope()
        self.season_index = SeasonIndexScope()
        self.seasons = {}
        self._notify()

    def entry(self, season_id: SeasonId) -> SeasonCacheEntry | None:
        return self.seasons.get(season_id)

    def episodes_key(self, season_id: SeasonId) -> RequestKey:
        if self.title_id is None:
            raise RuntimeError("No title selected")
        return RequestKey(self.title_id, Scope.EPISODES, (season_id,))

    async def load_detail(self, title_id: str) -> bool:
        """Fetch and normalize the title detail. Previous data stays until replaced."""

        if not self._is_active(title_id):
            return False
        scope = self.detail
        scope.status = "loading"
        scope.error = None
        self._notify()

        async def perform(ticket: Ticket) -> bool:
            try:
                payload = await self._upstream.fetch_title(title_id)
            except TransportError as exc:
                if not self._coordinator.is_live(ticket):
                    return False
                scope.status = "failed"
                scope.error = str(exc) or "Failed to fetch title detail"
                self._notify()
                return False
            if not self._coordinator.is_live(ticket):
                return False
            title = normalize_title(
                unwrap_results(payload), placeholder_image=self._upstream.placeholder_image
            )
            if not title.id:
                title = title.model_copy(update={"id": title_id})
            scope.title = title
            scope.status = "ready"
            self._notify()
            return True

        result = await self._coordinator.issue(RequestKey(title_id, Scope.DETAIL), perform)
        return bool(result)

    async def load_season_index(self, title_id: str) -> bool:
        """Fetch the season list and materialize one entry per season.

        A 404 resolves to an empty list without an error.
        """

        if not self._is_active(title_id):
            return False
        scope = self.season_index
        scope.status = "loading"
        scope.error = None
        self._notify()

        async def perform(ticket: Ticket) -> bool:
            try:
                payload = await self._upstream.fetch_seasons(title_id)
            except NotFoundError:
                payload = []
            except TransportError as exc:
                if not self._coordinator.is_live(ticket):
                    return False
                scope.status = "failed"
                scope.error = str(exc) or "Failed to fetch seasons"
                self._notify()
                return False
            if not self._coordinator.is_live(ticket):
                return False
            seasons = normalize_season_list(payload)
            for season_id in seasons:
                if season_id not in self.seasons:
                    self.seasons[season_id] = SeasonCacheEntry()
            scope.seasons = seasons
            scope.status = "ready"
            self._notify()
            return True

        result = await self._coordinator.issue(
            RequestKey(title_id, Scope.SEASON_INDEX), perform
        )
        return bool(result)

    async def load_season_episodes(
        self, title_id: str, season_id: SeasonId, cursor: str | None
    ) -> bool:
        """Fetch one page of a season and append it to the entry.

        Callers check ``entry.loading`` first; a call for a season already in
        flight joins that request instead of starting another.
        """

        if not self._is_active(title_id):
            return False
        entry = self.seasons.get(season_id)
        if entry is None:
            raise KeyError(f"Unknown season {season_id!r} for {title_id}")
        key = RequestKey(title_id, Scope.EPISODES, (season_id,))
        if not self._coordinator.in_flight(key):
            entry.loading = True
            entry.error = None
            entry.pending_cursor = cursor
            self._notify()

        async def perform(ticket: Ticket) -> bool:
            try:
                payload = await self._upstream.fetch_episodes(
                    title_id,
                    season=season_id,
                    page_size=self._page_size,
                    page_token=cursor,
                )
            except TransportError as exc:
                if not self._coordinator.is_live(ticket):
                    return False
                entry.loading = False
                entry.error = str(exc) or "Failed to fetch episodes"
                self._notify()
                return False
            if not self._coordinator.is_live(ticket):
                return False
            raw_items, next_cursor = extract_episode_page(payload)
            self._append_page(entry, season_id, raw_items)
            entry.next_page_cursor = next_cursor
            entry.has_more = next_cursor is not None
            entry.fetched_once = True
            entry.loading = False
            entry.error = None
            entry.pending_cursor = None
            self._notify()
            return True

        result = await self._coordinator.issue(key, perform)
        return bool(result)

    def _append_page(
        self, entry: SeasonCacheEntry, season_id: SeasonId, raw_items: list
    ) -> None:
        seen = {item.id for item in entry.items}
        for raw in raw_items:
            episode = normalize_episode(raw)
            if not episode.id:
                continue
            if episode.id in seen:
                logger.debug("Skipping duplicate episode %s in season %s", episode.id, season_id)
                continue
            if episode.season_number is None:
                logger.info(
                    "Episode %s has no resolvable season number; assigning season %s",
                    episode.id,
                    season_id,
                )
                if isinstance(season_id, (int, float)):
                    episode = episode.model_copy(update={"season_number": season_id})
            seen.add(episode.id)
            entry.items.append(episode)

    def cancel_season_episodes(self, season_id: SeasonId) -> bool:
        """Abort the season's in-flight page request, keeping what was loaded."""

        if self.title_id is None:
            return False
        entry = self.seasons.get(season_id)
        aborted = self._coordinator.supersede(self.episodes_key(season_id))
        if entry is not None and entry.loading:
            entry.loading = False
            entry.pending_cursor = None
            self._notify()
        return aborted

    def detail_snapshot(self) -> DetailSnapshot:
        return DetailSnapshot(
            status=self.detail.status, title=self.detail.title, error=self.detail.error
        )

    def season_index_snapshot(self) -> SeasonIndexSnapshot:
        return SeasonIndexSnapshot(
            status=self.season_index.status,
            seasons=list(self.season_index.seasons),
            error=self.season_index.error,
        )

    def entry_snapshot(self, season_id: SeasonId) -> SeasonEntrySnapshot | None:
        entry = self.seasons.get(season_id)
        if entry is None:
            return None
        return SeasonEntrySnapshot(
            season_id=season_id,
            items=list(entry.items),
            next_page_cursor=entry.next_page_cursor,
            has_more=entry.has_more,
            loading=entry.loading,
            error=entry.error,
            fetched_once=entry.fetched_once,
        )
