"""HTTP client for the upstream title catalog API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config import Settings
from ..models import SeasonId

logger = logging.getLogger(__name__)

TYPE_CODES: dict[str, str] = {
    "movie": "MOVIE",
    "tvSeries": "TV_SERIES",
    "tvMiniSeries": "TV_MINI_SERIES",
    "tvSpecial": "TV_SPECIAL",
    "tvMovie": "TV_MOVIE",
    "short": "SHORT",
    "video": "VIDEO",
    "videoGame": "VIDEO_GAME",
}


class TransportError(RuntimeError):
    """Network failure or non-success response from the upstream API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(TransportError):
    """The upstream answered 404 for the requested resource."""


class UpstreamClient:
    """Thin wrapper around the upstream catalog endpoints."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    @property
    def page_size(self) -> int:
        return self._settings.episodes_page_size

    @property
    def placeholder_image(self) -> str:
        return self._settings.placeholder_image_url

    async def fetch_title(self, title_id: str) -> Any:
        """Return the raw detail payload for ``title_id``."""

        return await self._get_json(f"/titles/{self._quote(title_id)}")

    async def fetch_seasons(self, title_id: str) -> Any:
        """Return the raw season index payload for ``title_id``."""

        return await self._get_json(f"/titles/{self._quote(title_id)}/seasons")

    async def fetch_episodes(
        self,
        title_id: str,
        *,
        season: SeasonId | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> Any:
        """Return one raw page of episodes, optionally scoped to a season."""

        params: dict[str, str] = {}
        if season is not None:
            params["season"] = str(season)
        if page_size is not None:
            params["pageSize"] = str(page_size)
        if page_token:
            params["pageToken"] = page_token
        return await self._get_json(
            f"/titles/{self._quote(title_id)}/episodes", params=params or None
        )

    async def fetch_titles(
        self, type_code: str, *, page_token: str | None = None
    ) -> Any:
        """Return one raw page of the popularity-sorted title listing."""

        params = {
            "types": type_code,
            "sortBy": "SORT_BY_POPULARITY",
            "sortOrder": "ASC",
        }
        if page_token:
            params["pageToken"] = page_token
        return await self._get_json("/titles", params=params)

    async def _get_json(
        self, url: str, *, params: dict[str, str] | None = None
    ) -> Any:
        try:
            response = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Upstream request to %s failed: %s", url, exc)
            raise TransportError(
                f"{exc.__class__.__name__}: {exc}".rstrip(": ")
            ) from exc

        if response.status_code >= 400:
            message = self._format_error(response)
            if response.status_code == 404:
                logger.info("Upstream returned 404 for %s", url)
                raise NotFoundError(message, status_code=404)
            logger.warning("Upstream request to %s failed: %s", url, message)
            raise TransportError(message, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Unexpected non-JSON upstream response for %s", url)
            raise TransportError(
                "Invalid JSON in upstream response", status_code=response.status_code
            ) from exc

    @staticmethod
    def _format_error(response: httpx.Response) -> str:
        body = response.text.strip()
        return " ".join(
            part
            for part in (f"HTTP {response.status_code}", response.reason_phrase, body)
            if part
        )

    @staticmethod
    def _quote(title_id: str) -> str:
        return quote(title_id, safe="")
