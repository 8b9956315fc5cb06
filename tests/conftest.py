"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.services.upstream import UpstreamClient  # noqa: E402


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"UPSTREAM_API_URL": "https://api.example.com"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


class FakeCatalog:
    """Scriptable upstream catalog served through ``httpx.MockTransport``.

    Responses are registered per endpoint; an ``int`` value answers with that
    status code. Requests can be held back with :meth:`gate` so tests decide
    the order in which concurrent responses arrive.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.titles: dict[str, Any] = {}
        self.seasons: dict[str, Any] = {}
        self.episodes: dict[tuple[str, str | None, str | None], Any] = {}
        self._gates: dict[tuple, asyncio.Event] = {}

    def gate(self, *key: Any) -> asyncio.Event:
        """Hold requests matching ``key`` until the returned event is set.

        Keys are ``("detail", id)``, ``("seasons", id)`` or
        ``("episodes", id, season, page_token)``.
        """

        return self._gates.setdefault(tuple(key), asyncio.Event())

    def episode_requests(self, title_id: str | None = None) -> list[tuple[str | None, str | None]]:
        calls = []
        for request in self.requests:
            parts = request.url.path.strip("/").split("/")
            if len(parts) == 3 and parts[2] == "episodes":
                if title_id is not None and parts[1] != title_id:
                    continue
                params = request.url.params
                calls.append((params.get("season"), params.get("pageToken")))
        return calls

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        params = request.url.params
        if len(parts) == 2:
            key: tuple = ("detail", parts[1])
            value = self.titles.get(parts[1], 404)
        elif parts[2] == "seasons":
            key = ("seasons", parts[1])
            value = self.seasons.get(parts[1], 404)
        else:
            season = params.get("season")
            token = params.get("pageToken")
            key = ("episodes", parts[1], season, token)
            value = self.episodes.get((parts[1], season, token), 404)

        gate = self._gates.get(key)
        if gate is not None:
            await gate.wait()

        if isinstance(value, int):
            return httpx.Response(value, text="upstream says no")
        return httpx.Response(200, json=value)

    @asynccontextmanager
    async def client(self, **settings_overrides: Any) -> AsyncIterator[UpstreamClient]:
        settings = build_settings(**settings_overrides)
        transport = httpx.MockTransport(self.handler)
        async with httpx.AsyncClient(
            transport=transport, base_url=settings.upstream_api_url
        ) as http_client:
            yield UpstreamClient(settings, http_client)


async def wait_until(predicate: Callable[[], bool], *, rounds: int = 500) -> None:
    """Yield to the event loop until ``predicate`` holds."""

    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return build_settings


@pytest.fixture
def until() -> Callable[..., Any]:
    return wait_until
