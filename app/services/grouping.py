"""Group a title's full episode list by season for one-shot listings."""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from ..models import Episode, SeasonGroup
from ..normalizer import extract_episode_page, normalize_episode
from .upstream import NotFoundError, UpstreamClient

logger = logging.getLogger(__name__)


def group_episodes(raw_items: Iterable[Any]) -> list[SeasonGroup]:
    """Bin raw episode records by season number, ordered by season.

    Records with an unresolvable, non-finite or non-positive season number are
    discarded (and logged), as are records without an id.
    """

    buckets: dict[int | float, list[Episode]] = {}
    for raw in raw_items:
        episode = normalize_episode(raw)
        season = episode.season_number
        if season is None or not math.isfinite(season) or season <= 0:
            logger.warning(
                "Discarding episode %s: unresolvable season number %r",
                episode.id or "<no id>",
                season,
            )
            continue
        if not episode.id:
            continue
        buckets.setdefault(season, []).append(episode)

    return [
        SeasonGroup(season_number=season, episodes=episodes, episode_count=len(episodes))
        for season, episodes in sorted(buckets.items())
    ]


async def fetch_season_groups(
    upstream: UpstreamClient, title_id: str, *, max_pages: int = 50
) -> list[SeasonGroup]:
    """Fetch every episode page of ``title_id`` and group the result.

    An upstream 404 yields an empty list; other transport errors propagate.
    """

    collected: list[Any] = []
    cursor: str | None = None
    for page in range(1, max_pages + 1):
        try:
            payload = await upstream.fetch_episodes(title_id, page_token=cursor)
        except NotFoundError:
            if page == 1:
                return []
            break
        raw_items, cursor = extract_episode_page(payload)
        collected.extend(raw_items)
        if cursor is None:
            break
    else:
        logger.warning(
            "Stopped grouping %s after %s pages; more pages were available",
            title_id,
            max_pages,
        )
    return group_episodes(collected)
