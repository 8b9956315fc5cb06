"""Active season selection and its mirror in the shareable view location."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, Sequence
from urllib.parse import urlencode

from ..models import SeasonId
from ..utils import numeric_text
from .cache import ScopedCache

logger = logging.getLogger(__name__)

SEASON_PARAM = "season"


class NavigationSink(Protocol):
    """Receives the active season so it can be reflected in a shareable location."""

    def replace_season(self, season_id: SeasonId | None) -> None:
        ...


class QueryStringNavigation:
    """Keeps ``path?query`` for a view and rewrites the season parameter in place.

    The location is replaced on every change, never appended to a history.
    """

    def __init__(self, path: str = "", params: Mapping[str, str] | None = None) -> None:
        self.path = path
        self.params: dict[str, str] = dict(params or {})

    @property
    def season_hint(self) -> str | None:
        return self.params.get(SEASON_PARAM)

    def navigate(self, path: str, params: Mapping[str, str] | None = None) -> None:
        self.path = path
        self.params = dict(params or {})

    def replace_season(self, season_id: SeasonId | None) -> None:
        if season_id is None:
            self.params.pop(SEASON_PARAM, None)
        else:
            self.params[SEASON_PARAM] = str(season_id)

    @property
    def location(self) -> str:
        if not self.params:
            return self.path
        return f"{self.path}?{urlencode(self.params)}"


def match_season(candidate: object, seasons: Sequence[SeasonId]) -> SeasonId | None:
    """Return the season equal to ``candidate`` by numeric value or by text."""

    if candidate is None:
        return None
    wanted = numeric_text(candidate) if isinstance(candidate, str) else candidate
    if isinstance(wanted, (int, float)) and not isinstance(wanted, bool):
        for season_id in seasons:
            if isinstance(season_id, (int, float)) and season_id == wanted:
                return season_id
    text = str(candidate).strip()
    for season_id in seasons:
        if str(season_id) == text:
            return season_id
    return None


class SelectionController:
    """Picks the active season and loads its first page when needed."""

    def __init__(self, cache: ScopedCache, sink: NavigationSink | None = None) -> None:
        self._cache = cache
        self._sink = sink
        self._hint: str | None = None
        self.active: SeasonId | None = None

    def reset(self, hint: str | None = None) -> None:
        self.active = None
        self._hint = hint

    def choose_initial(self, seasons: Sequence[SeasonId]) -> SeasonId | None:
        """Choose the active season once per season index resolution.

        The navigation hint wins when it names an available season, otherwise
        the first season is used. An existing choice is never overridden.
        """

        if self.active is not None or not seasons:
            return None
        chosen = match_season(self._hint, seasons)
        if chosen is None:
            if self._hint is not None:
                logger.info("Season hint %r not available; using %s", self._hint, seasons[0])
            chosen = seasons[0]
        self._activate(chosen)
        return chosen

    async def start(self, seasons: Sequence[SeasonId]) -> bool:
        if self.choose_initial(seasons) is None:
            return False
        return await self.ensure_loaded()

    async def select(self, season_id: object) -> bool:
        """Make ``season_id`` active; raises ``KeyError`` for unknown seasons."""

        target = match_season(season_id, self._cache.season_index.seasons)
        if target is None:
            raise KeyError(f"Unknown season {season_id!r}")
        previous = self.active
        if previous == target:
            return False
        self._activate(target)
        if previous is not None:
            self._cache.cancel_season_episodes(previous)
        return await self.ensure_loaded()

    async def ensure_loaded(self) -> bool:
        """Request the active season's first page unless it was fetched or is loading."""

        title_id = self._cache.title_id
        if title_id is None or self.active is None:
            return False
        entry = self._cache.entry(self.active)
        if entry is None or entry.fetched_once or entry.loading:
            return False
        return await self._cache.load_season_episodes(title_id, self.active, None)

    def _activate(self, season_id: SeasonId) -> None:
        self.active = season_id
        if self._sink is not None:
            self._sink.replace_season(season_id)
