"""Top-level orchestration of one title view: detail, seasons, then episodes."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from ..models import BrowserSnapshot, SeasonId
from .cache import ScopedCache
from .coordinator import RequestCoordinator
from .selection import NavigationSink, QueryStringNavigation, SelectionController
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    START = "start"
    DETAIL_LOADING = "detail_loading"
    DETAIL_FAILED = "detail_failed"
    SEASON_INDEX_LOADING = "season_index_loading"
    SEASON_INDEX_FAILED = "season_index_failed"
    SELECTION_PENDING = "selection_pending"
    NO_SEASONS = "no_seasons"
    ACTIVE_SEASON_CHOSEN = "active_season_chosen"
    EPISODES_LOADING = "episodes_loading"
    EPISODES_READY = "episodes_ready"
    EPISODES_FAILED = "episodes_failed"


class TitleBrowser:
    """Owns the cache of a single view and sequences its loads.

    A detail failure stops the sequence; a season index failure leaves the
    loaded detail untouched. Every retry re-enters only its own scope.
    """

    def __init__(
        self,
        upstream: UpstreamClient,
        *,
        navigation: NavigationSink | None = None,
        page_size: int | None = None,
    ) -> None:
        self.coordinator = RequestCoordinator()
        self.cache = ScopedCache(upstream, self.coordinator, page_size=page_size)
        self.navigation = navigation
        self.selection = SelectionController(self.cache, navigation)
        self._subscribers: list[Callable[[BrowserSnapshot], None]] = []
        self.cache.on_change(self._publish)

    @property
    def title_id(self) -> str | None:
        return self.cache.title_id

    def subscribe(self, callback: Callable[[BrowserSnapshot], None]) -> None:
        """Call ``callback`` with a fresh snapshot after every state transition."""

        self._subscribers.append(callback)

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)

    def _is_current(self, title_id: str) -> bool:
        return self.cache.title_id == title_id

    async def open(self, title_id: str, season_hint: str | None = None) -> None:
        """Navigate to ``title_id`` and run the load sequence.

        Opening the title that is already shown is a no-op.
        """

        title_id = title_id.strip()
        if not title_id:
            raise ValueError("title id must not be empty")
        if self._is_current(title_id):
            return
        self.selection.reset(season_hint)
        if isinstance(self.navigation, QueryStringNavigation):
            params = {"season": season_hint} if season_hint else None
            self.navigation.navigate(f"/titles/{title_id}", params)
        self.cache.reset(title_id)
        logger.info("Opening title %s", title_id)
        await self._run_sequence(title_id)

    async def _run_sequence(self, title_id: str) -> None:
        if not await self.cache.load_detail(title_id):
            return
        if not self._is_current(title_id):
            return
        await self._load_seasons(title_id)

    async def _load_seasons(self, title_id: str) -> None:
        if not await self.cache.load_season_index(title_id):
            return
        if not self._is_current(title_id):
            return
        await self.selection.start(self.cache.season_index.seasons)

    async def select_season(self, season_id: object) -> bool:
        return await self.selection.select(season_id)

    async def load_more(self) -> bool:
        """Request the next page of the active season.

        Pages are strictly sequential: nothing happens while a page is loading
        or once the season reports no further pages.
        """

        title_id = self.cache.title_id
        active = self.selection.active
        if title_id is None or active is None:
            return False
        entry = self.cache.entry(active)
        if entry is None or entry.loading:
            return False
        if not entry.fetched_once:
            return await self.selection.ensure_loaded()
        if not entry.has_more:
            return False
        return await self.cache.load_season_episodes(title_id, active, entry.next_page_cursor)

    async def retry_detail(self) -> bool:
        title_id = self.cache.title_id
        if title_id is None or self.cache.detail.status == "loading":
            return False
        if not await self.cache.load_detail(title_id):
            return False
        if self._is_current(title_id) and self.cache.season_index.status == "idle":
            await self._load_seasons(title_id)
        return True

    async def retry_season_index(self) -> bool:
        title_id = self.cache.title_id
        if title_id is None or self.cache.season_index.status == "loading":
            return False
        if self.cache.detail.status in ("idle", "loading"):
            return False
        await self._load_seasons(title_id)
        return self.cache.season_index.status == "ready"

    async def retry_season_episodes(self, season_id: SeasonId) -> bool:
        """Re-request the page that failed, keeping already loaded items."""

        title_id = self.cache.title_id
        if title_id is None:
            return False
        entry = self.cache.entry(season_id)
        if entry is None:
            raise KeyError(f"Unknown season {season_id!r}")
        if entry.loading or (entry.error is None and entry.fetched_once):
            return False
        return await self.cache.load_season_episodes(title_id, season_id, entry.retry_cursor())

    @property
    def phase(self) -> Phase:
        cache = self.cache
        if cache.title_id is None:
            return Phase.START
        if cache.detail.status == "failed":
            return Phase.DETAIL_FAILED
        if cache.detail.status != "ready":
            return Phase.DETAIL_LOADING
        if cache.season_index.status == "failed":
            return Phase.SEASON_INDEX_FAILED
        if cache.season_index.status != "ready":
            return Phase.SEASON_INDEX_LOADING
        if not cache.season_index.seasons:
            return Phase.NO_SEASONS
        active = self.selection.active
        if active is None:
            return Phase.SELECTION_PENDING
        entry = cache.entry(active)
        if entry is None or entry.status == "idle":
            return Phase.ACTIVE_SEASON_CHOSEN
        if entry.status == "loading":
            return Phase.EPISODES_LOADING
        if entry.status == "failed":
            return Phase.EPISODES_FAILED
        return Phase.EPISODES_READY

    def snapshot(self) -> BrowserSnapshot:
        active = self.selection.active
        location = None
        if isinstance(self.navigation, QueryStringNavigation):
            location = self.navigation.location
        return BrowserSnapshot(
            title_id=self.cache.title_id,
            phase=self.phase.value,
            detail=self.cache.detail_snapshot(),
            season_index=self.cache.season_index_snapshot(),
            active_season=active,
            active_entry=self.cache.entry_snapshot(active) if active is not None else None,
            location=location,
        )

    async def close(self) -> None:
        """Abort every outstanding operation of the view."""

        await self.coordinator.aclose()
        for entry in self.cache.seasons.values():
            entry.loading = False
        if self.cache.detail.status == "loading":
            self.cache.detail.status = "idle"
        if self.cache.season_index.status == "loading":
            self.cache.season_index.status = "idle"
