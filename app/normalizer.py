"""Map raw upstream records onto canonical :mod:`app.models` records.

The upstream API returns differently shaped JSON depending on the endpoint and
API version. Every canonical field is resolved from a precedence chain: a
tuple of extractors evaluated left to right where the first one returning a
value other than ``None`` wins. The functions here never raise on malformed
input and never filter records; callers decide what to drop.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable

from .config import DEFAULT_PLACEHOLDER_IMAGE
from .models import Episode, Rating, SeasonId, Title
from .utils import as_int, as_number, numeric_text, round_half_up, to_iso_date

Extractor = Callable[[Any], Any]
Chain = tuple[Extractor, ...]

RESULT_KEYS = ("results", "titles", "data", "items")
CURSOR_PATHS = (
    ("nextPageToken",),
    ("pageToken",),
    ("data", "nextPageToken"),
    ("episodes", "nextPageToken"),
    ("pageInfo", "nextPageToken"),
)


def dig(value: Any, *keys: str) -> Any:
    """Walk nested mappings, returning ``None`` as soon as a step is missing."""

    for key in keys:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def path(*keys: str) -> Extractor:
    return lambda raw: dig(raw, *keys)


def number(extractor: Extractor) -> Extractor:
    return lambda raw: as_number(extractor(raw))


def integer(extractor: Extractor) -> Extractor:
    return lambda raw: as_int(extractor(raw))


def numeric_string(extractor: Extractor) -> Extractor:
    return lambda raw: numeric_text(extractor(raw))


def text(extractor: Extractor) -> Extractor:
    def _extract(raw: Any) -> str | None:
        value = extractor(raw)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    return _extract


def seconds_as_minutes(extractor: Extractor) -> Extractor:
    def _extract(raw: Any) -> int | None:
        seconds = as_number(extractor(raw))
        if seconds is None:
            return None
        return round_half_up(seconds / 60)

    return _extract


def iso_date(extractor: Extractor) -> Extractor:
    return lambda raw: to_iso_date(extractor(raw))


def first(raw: Any, chain: Chain, default: Any = None) -> Any:
    """Return the first defined value produced by ``chain``."""

    for extractor in chain:
        value = extractor(raw)
        if value is not None:
            return value
    return default


def _whole_minutes(value: Any) -> int | None:
    number_value = as_number(value)
    if number_value is None:
        return None
    return round_half_up(number_value)


RUNTIME_CHAIN: Chain = (
    lambda raw: _whole_minutes(dig(raw, "runtimeMinutes")),
    seconds_as_minutes(path("runtimeSeconds")),
    lambda raw: _whole_minutes(dig(raw, "runtime")),
    lambda raw: _whole_minutes(dig(raw, "runtime", "minutes")),
    seconds_as_minutes(path("runtime", "seconds")),
)

PLOT_CHAIN: Chain = (
    text(path("plot")),
    text(path("plot", "plotText", "plainText")),
    text(path("summary")),
    text(path("description")),
)

RATING_SCORE_CHAIN: Chain = (
    number(path("rating")),
    number(path("ratingsSummary", "aggregateRating")),
    number(path("rating", "aggregateRating")),
    number(path("rating", "value")),
)

VOTE_COUNT_CHAIN: Chain = (
    integer(path("voteCount")),
    integer(path("ratingsSummary", "voteCount")),
    integer(path("rating", "voteCount")),
)

EPISODE_CHAINS: dict[str, Chain] = {
    "id": (text(path("id")),),
    "episode_number": (
        integer(path("episodeNumber")),
        integer(path("episode")),
        integer(path("index")),
    ),
    "season_number": (
        number(path("seasonNumber")),
        number(path("season")),
        numeric_string(path("season")),
        number(path("seasonIndex")),
    ),
    "title": (
        text(path("titleText", "text")),
        text(path("title", "title")),
        text(path("title")),
        text(path("primaryTitle")),
        text(path("originalTitle")),
        text(path("name")),
    ),
    "image_url": (
        text(path("primaryImage", "url")),
        text(path("image")),
        text(path("poster")),
    ),
    "air_date_iso": (
        iso_date(path("releaseDate")),
        iso_date(path("airDate")),
        text(path("releaseDate")),
        text(path("airDate")),
    ),
    "runtime_minutes": RUNTIME_CHAIN,
    "plot": PLOT_CHAIN[:3],
}

EPISODE_DEFAULTS: dict[str, Any] = {"id": "", "episode_number": 0, "title": "Untitled"}

TITLE_CHAINS: dict[str, Chain] = {
    "id": (text(path("id")),),
    "display_title": (
        text(path("primaryTitle")),
        text(path("titleText", "text")),
        text(path("originalTitle")),
        text(path("name")),
        text(path("title")),
    ),
    "image_url": (
        text(path("primaryImage", "url")),
        text(path("image")),
        text(path("poster")),
    ),
    "year": (
        integer(path("startYear")),
        integer(path("releaseYear", "year")),
        integer(path("releaseYear")),
        integer(path("year")),
    ),
    "runtime_minutes": RUNTIME_CHAIN,
    "plot": PLOT_CHAIN,
    "title_type": (
        text(path("titleType", "text")),
        text(path("titleType")),
        text(path("type")),
    ),
}

TITLE_DEFAULTS: dict[str, Any] = {
    "id": "",
    "display_title": "Untitled",
    "image_url": DEFAULT_PLACEHOLDER_IMAGE,
}

PERSON_NAME_CHAIN: Chain = (
    text(lambda person: person),
    text(path("displayName")),
    text(path("name")),
    text(path("nameText", "text")),
)

GENRE_CHAIN: Chain = (
    text(lambda genre: genre),
    text(path("text")),
    text(path("genre")),
)


def _resolve(raw: Any, chains: dict[str, Chain], defaults: dict[str, Any]) -> dict[str, Any]:
    return {
        field: first(raw, chain, defaults.get(field)) for field, chain in chains.items()
    }


def _names(values: Any, chain: Chain) -> list[str]:
    if not isinstance(values, list):
        return []
    names: list[str] = []
    for value in values:
        name = first(value, chain)
        if name is not None:
            names.append(name)
    return names


def _rating(raw: Any) -> Rating | None:
    score = first(raw, RATING_SCORE_CHAIN)
    if score is None:
        return None
    return Rating(score=float(score), vote_count=first(raw, VOTE_COUNT_CHAIN))


def _as_int_when_integral(value: int | float | None) -> int | float | None:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def unwrap_results(payload: Any) -> Any:
    """Return the record payload hidden under one of the known envelope keys."""

    if isinstance(payload, dict):
        for key in RESULT_KEYS:
            value = payload.get(key)
            if value is not None:
                return value
    return payload


def normalize_episode(raw: Any) -> Episode:
    """Return a canonical :class:`Episode` for one upstream record."""

    fields = _resolve(raw, EPISODE_CHAINS, EPISODE_DEFAULTS)
    fields["season_number"] = _as_int_when_integral(fields["season_number"])
    fields["rating"] = _rating(raw)
    return Episode(**fields)


def normalize_title(raw: Any, *, placeholder_image: str = DEFAULT_PLACEHOLDER_IMAGE) -> Title:
    """Return a canonical :class:`Title` for one detail payload.

    ``placeholder_image`` is used when the payload carries no image.
    """

    fields = _resolve(raw, TITLE_CHAINS, {**TITLE_DEFAULTS, "image_url": placeholder_image})
    fields["rating"] = _rating(raw)
    fields["genres"] = _names(dig(raw, "genres"), GENRE_CHAIN)
    for role in ("directors", "writers", "stars"):
        fields[role] = _names(dig(raw, role), PERSON_NAME_CHAIN)
    return Title(**fields)


SEASON_ENTRY_CHAIN: Chain = (
    number(path("seasonNumber")),
    number(path("season")),
    numeric_string(path("season")),
    number(path("index")),
    numeric_string(path("seasonId")),
    text(path("seasonId")),
    text(path("season")),
)


def _season_id(entry: Any) -> SeasonId | None:
    if isinstance(entry, bool):
        return None
    if isinstance(entry, (int, float)):
        return _as_int_when_integral(as_number(entry))
    if isinstance(entry, str):
        parsed = numeric_text(entry)
        if parsed is not None:
            return _as_int_when_integral(parsed)
        return entry.strip() or None
    return _as_int_when_integral(first(entry, SEASON_ENTRY_CHAIN))


def season_sort_key(position: int, season_id: SeasonId) -> tuple[int, float, int]:
    """Numeric ids sort by value; anything else keeps its insertion position."""

    if isinstance(season_id, (int, float)):
        return (0, float(season_id), position)
    return (1, 0.0, position)


def normalize_season_list(raw: Any) -> list[SeasonId]:
    """Extract the ordered, de-duplicated season ids from a seasons payload."""

    data = unwrap_results(raw)
    if isinstance(data, dict):
        data = data.get("seasons")
    if not isinstance(data, list):
        return []

    seen: set[str] = set()
    collected: list[SeasonId] = []
    for entry in data:
        season_id = _season_id(entry)
        if season_id is None or str(season_id) in seen:
            continue
        seen.add(str(season_id))
        collected.append(season_id)

    ordered = sorted(enumerate(collected), key=lambda pair: season_sort_key(*pair))
    return [season_id for _, season_id in ordered]


def _cursor(payload: Any) -> str | None:
    for keys in CURSOR_PATHS:
        value = dig(payload, *keys)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value:
            return value
    return None


def extract_episode_page(payload: Any) -> tuple[list[Any], str | None]:
    """Split an episodes response into raw records and the next-page cursor."""

    items = dig(payload, "episodes")
    if not isinstance(items, list):
        items = unwrap_results(payload)
        if isinstance(items, dict):
            items = items.get("episodes")
    if not isinstance(items, list):
        items = []
    return items, _cursor(payload)


def extract_title_page(payload: Any) -> tuple[list[Any], str | None]:
    """Split a title listing response into raw records and the next-page cursor."""

    items = unwrap_results(payload)
    if not isinstance(items, list):
        items = []
    return items, _cursor(payload)


def iter_titles(
    records: Iterable[Any], *, placeholder_image: str = DEFAULT_PLACEHOLDER_IMAGE
) -> Iterable[Title]:
    for record in records:
        title = normalize_title(record, placeholder_image=placeholder_image)
        if title.id:
            yield title
