"""Registry of live title views, one :class:`TitleBrowser` per client view."""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field

from ..config import Settings
from .browser import TitleBrowser
from .selection import QueryStringNavigation
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class View:
    id: str
    browser: TitleBrowser
    navigation: QueryStringNavigation
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_seen = time.monotonic()


class ViewRegistry:
    """Creates, looks up and expires browse views."""

    def __init__(self, settings: Settings, upstream: UpstreamClient) -> None:
        self._settings = settings
        self._upstream = upstream
        self._views: dict[str, View] = {}

    def __len__(self) -> int:
        return len(self._views)

    async def create(self) -> View:
        await self.prune()
        while len(self._views) >= self._settings.max_views:
            oldest = min(self._views.values(), key=lambda view: view.last_seen)
            logger.info("Evicting view %s to stay within MAX_VIEWS", oldest.id)
            await self.close(oldest.id)

        navigation = QueryStringNavigation()
        browser = TitleBrowser(
            self._upstream,
            navigation=navigation,
            page_size=self._settings.episodes_page_size,
        )
        view = View(id=secrets.token_urlsafe(12), browser=browser, navigation=navigation)
        self._views[view.id] = view
        return view

    def get(self, view_id: str) -> View:
        """Return the view or raise ``KeyError`` when it is unknown or expired."""

        view = self._views.get(view_id)
        if view is None or self._expired(view, time.monotonic()):
            raise KeyError(f"Unknown view {view_id}")
        view.touch()
        return view

    async def close(self, view_id: str) -> bool:
        view = self._views.pop(view_id, None)
        if view is None:
            return False
        await view.browser.close()
        return True

    async def prune(self) -> int:
        now = time.monotonic()
        expired = [view_id for view_id, view in self._views.items() if self._expired(view, now)]
        for view_id in expired:
            await self.close(view_id)
        return len(expired)

    async def close_all(self) -> None:
        for view_id in list(self._views):
            await self.close(view_id)

    def _expired(self, view: View, now: float) -> bool:
        return now - view.last_seen > self._settings.view_ttl_seconds
