"""Tests for the per-scope cache state machines."""

from __future__ import annotations

import asyncio

import pytest

from app.services.cache import ScopedCache
from app.services.coordinator import RequestCoordinator


def page(ids: list[str], token: str | None = None, season: int = 1) -> dict:
    return {
        "episodes": [
            {"id": episode_id, "episodeNumber": index + 1, "seasonNumber": season}
            for index, episode_id in enumerate(ids)
        ],
        "nextPageToken": token,
    }


async def _ready_cache(upstream, title_id: str = "tt1") -> ScopedCache:
    cache = ScopedCache(upstream, RequestCoordinator())
    cache.reset(title_id)
    assert await cache.load_season_index(title_id)
    return cache


@pytest.mark.anyio("asyncio")
async def test_example_page_builds_season_entry(catalog) -> None:
    catalog.seasons["tt1"] = {"seasons": [{"season": "2"}]}
    catalog.episodes[("tt1", "2", None)] = {
        "episodes": [
            {"id": "e1", "episode": 1, "season": "2"},
            {"id": "e2", "episodeNumber": 2, "seasonIndex": 2},
        ],
        "nextPageToken": "tok2",
    }

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        assert await cache.load_season_episodes("tt1", 2, None)

    entry = cache.entry(2)
    assert entry is not None
    assert [item.episode_number for item in entry.items] == [1, 2]
    assert [item.season_number for item in entry.items] == [2, 2]
    assert entry.has_more is True
    assert entry.next_page_cursor == "tok2"
    assert entry.fetched_once is True
    assert entry.loading is False
    assert entry.error is None


@pytest.mark.anyio("asyncio")
async def test_season_index_materializes_entries_before_any_episode_fetch(catalog) -> None:
    catalog.seasons["tt1"] = [1, 2, 3]

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)

    assert cache.season_index.seasons == [1, 2, 3]
    assert set(cache.seasons) == {1, 2, 3}
    assert all(not entry.fetched_once and not entry.items for entry in cache.seasons.values())
    assert catalog.episode_requests() == []


@pytest.mark.anyio("asyncio")
async def test_season_index_not_found_resolves_empty(catalog) -> None:
    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)

    assert cache.season_index.status == "ready"
    assert cache.season_index.seasons == []
    assert cache.season_index.error is None


@pytest.mark.anyio("asyncio")
async def test_season_index_failure_keeps_detail(catalog) -> None:
    catalog.titles["tt1"] = {"id": "tt1", "primaryTitle": "Show"}
    catalog.seasons["tt1"] = 500

    async with catalog.client() as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        cache.reset("tt1")
        assert await cache.load_detail("tt1")
        assert not await cache.load_season_index("tt1")

    assert cache.detail.status == "ready"
    assert cache.detail.title is not None
    assert cache.detail.title.display_title == "Show"
    assert cache.season_index.status == "failed"
    assert cache.season_index.error is not None
    assert cache.season_index.error.startswith("HTTP 500")


@pytest.mark.anyio("asyncio")
async def test_detail_retry_failure_keeps_previous_title(catalog) -> None:
    catalog.titles["tt1"] = {"id": "tt1", "primaryTitle": "Show"}

    async with catalog.client() as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        cache.reset("tt1")
        assert await cache.load_detail("tt1")
        catalog.titles["tt1"] = 502
        assert not await cache.load_detail("tt1")

    assert cache.detail.status == "failed"
    assert cache.detail.title is not None
    assert cache.detail.title.id == "tt1"


@pytest.mark.anyio("asyncio")
async def test_pages_accumulate_in_request_order(catalog) -> None:
    catalog.seasons["tt1"] = [1]
    catalog.episodes[("tt1", "1", None)] = page(["a", "b", "c"], "p2")
    catalog.episodes[("tt1", "1", "p2")] = page(["d", "e"], "p3")
    catalog.episodes[("tt1", "1", "p3")] = page(["f"], None)

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        cursor = None
        for _ in range(3):
            assert await cache.load_season_episodes("tt1", 1, cursor)
            cursor = cache.entry(1).next_page_cursor

    entry = cache.entry(1)
    assert [item.id for item in entry.items] == ["a", "b", "c", "d", "e", "f"]
    assert entry.has_more is False
    assert entry.next_page_cursor is None
    assert catalog.episode_requests() == [("1", None), ("1", "p2"), ("1", "p3")]


@pytest.mark.anyio("asyncio")
async def test_page_failure_preserves_items_and_cursor(catalog) -> None:
    catalog.seasons["tt1"] = [1]
    catalog.episodes[("tt1", "1", None)] = page(["a", "b"], "p2")
    catalog.episodes[("tt1", "1", "p2")] = 503

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        assert await cache.load_season_episodes("tt1", 1, None)
        assert not await cache.load_season_episodes("tt1", 1, "p2")

    entry = cache.entry(1)
    assert [item.id for item in entry.items] == ["a", "b"]
    assert entry.error is not None and entry.error.startswith("HTTP 503")
    assert entry.loading is False
    assert entry.next_page_cursor == "p2"
    assert entry.has_more is True
    assert entry.retry_cursor() == "p2"


@pytest.mark.anyio("asyncio")
async def test_records_without_id_and_duplicates_are_skipped(catalog) -> None:
    catalog.seasons["tt1"] = [1]
    catalog.episodes[("tt1", "1", None)] = {
        "episodes": [{"id": "a"}, {"episodeNumber": 2}, {"id": "a"}, {"id": "b"}],
        "nextPageToken": "",
    }

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        assert await cache.load_season_episodes("tt1", 1, None)

    entry = cache.entry(1)
    assert [item.id for item in entry.items] == ["a", "b"]
    assert [item.season_number for item in entry.items] == [1, 1]
    assert entry.has_more is False
    assert entry.next_page_cursor is None


@pytest.mark.anyio("asyncio")
async def test_unknown_season_raises_key_error(catalog) -> None:
    catalog.seasons["tt1"] = [1]

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        with pytest.raises(KeyError):
            await cache.load_season_episodes("tt1", 9, None)


@pytest.mark.anyio("asyncio")
async def test_loading_keeps_existing_items_visible(catalog, until) -> None:
    catalog.seasons["tt1"] = [1]
    catalog.episodes[("tt1", "1", None)] = page(["a"], "p2")
    catalog.episodes[("tt1", "1", "p2")] = page(["b"], None)
    gate = catalog.gate("episodes", "tt1", "1", "p2")

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        await cache.load_season_episodes("tt1", 1, None)
        pending = asyncio.create_task(cache.load_season_episodes("tt1", 1, "p2"))
        await until(lambda: len(catalog.episode_requests()) == 2)

        entry = cache.entry(1)
        assert entry.loading is True
        assert [item.id for item in entry.items] == ["a"]

        gate.set()
        assert await pending

    assert [item.id for item in cache.entry(1).items] == ["a", "b"]


@pytest.mark.anyio("asyncio")
async def test_cancel_season_episodes_discards_late_response(catalog, until) -> None:
    catalog.seasons["tt1"] = [1]
    catalog.episodes[("tt1", "1", None)] = page(["a"], None)
    catalog.gate("episodes", "tt1", "1", None)

    async with catalog.client() as upstream:
        cache = await _ready_cache(upstream)
        pending = asyncio.create_task(cache.load_season_episodes("tt1", 1, None))
        await until(lambda: len(catalog.episode_requests()) == 1)

        assert cache.cancel_season_episodes(1) is True
        assert await pending is False

    entry = cache.entry(1)
    assert entry.items == []
    assert entry.loading is False
    assert entry.fetched_once is False


@pytest.mark.anyio("asyncio")
async def test_reset_discards_scopes_and_aborts_requests(catalog, until) -> None:
    catalog.titles["tt1"] = {"id": "tt1"}
    catalog.gate("detail", "tt1")
    changes: list[str | None] = []

    async with catalog.client() as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        cache.on_change(lambda: changes.append(cache.detail.status))
        cache.reset("tt1")
        pending = asyncio.create_task(cache.load_detail("tt1"))
        await until(lambda: len(catalog.requests) == 1)

        cache.reset("tt2")
        assert await pending is False

    assert cache.title_id == "tt2"
    assert cache.detail.status == "idle"
    assert cache.detail.title is None
    assert cache.seasons == {}
    assert changes == ["idle", "loading", "idle"]


@pytest.mark.anyio("asyncio")
async def test_load_for_inactive_title_is_ignored(catalog) -> None:
    async with catalog.client() as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        cache.reset("tt2")
        assert await cache.load_detail("tt1") is False

    assert catalog.requests == []


@pytest.mark.anyio("asyncio")
async def test_detail_uses_configured_placeholder_image(catalog) -> None:
    catalog.titles["tt1"] = {"id": "tt1", "primaryTitle": "No Poster"}

    async with catalog.client(PLACEHOLDER_IMAGE_URL="https://img.example/none.png") as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        cache.reset("tt1")
        assert await cache.load_detail("tt1")

    assert cache.detail.title is not None
    assert cache.detail.title.image_url == "https://img.example/none.png"


@pytest.mark.anyio("asyncio")
async def test_episodes_key_requires_a_selected_title(catalog) -> None:
    async with catalog.client() as upstream:
        cache = ScopedCache(upstream, RequestCoordinator())
        with pytest.raises(RuntimeError):
            cache.episodes_key(1)
        assert cache.cancel_season_episodes(1) is False
