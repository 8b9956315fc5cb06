"""Utility helpers for the TitleDeck service."""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Iterable


NUMERIC_TEXT_RE = re.compile(r"^\s*[-+]?\d+(?:\.\d+)?\s*$")
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def as_number(value: Any) -> int | float | None:
    """Return ``value`` when it is a finite real number (booleans excluded)."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def as_int(value: Any) -> int | None:
    """Return an integral number as ``int``; fractional or non-numeric values yield ``None``."""

    number = as_number(value)
    if number is None:
        return None
    if isinstance(number, float):
        if not number.is_integer():
            return None
        return int(number)
    return number


def numeric_text(value: Any) -> int | float | None:
    """Parse a string such as ``"2"`` or ``" 3.0 "`` into a number."""

    if not isinstance(value, str) or not NUMERIC_TEXT_RE.match(value):
        return None
    number = float(value)
    if number.is_integer():
        return int(number)
    return number


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_iso_date(value: Any) -> str | None:
    """Convert a ``{year, month, day}`` mapping into ``YYYY-MM-DD``.

    All three parts must be present and non-zero, otherwise ``None`` is
    returned so callers can fall back to a pre-formatted string.
    """

    if not isinstance(value, dict):
        return None
    parts = [as_int(value.get(key)) for key in ("year", "month", "day")]
    if any(not part for part in parts):
        return None
    year, month, day = parts
    return f"{year}-{month:02d}-{day:02d}"


def format_runtime(minutes: int | None) -> str | None:
    """Return ``1h 5m`` / ``45m`` style runtime labels."""

    if minutes is None or minutes <= 0:
        return None
    hours, remainder = divmod(minutes, 60)
    if hours > 0:
        return f"{hours}h {remainder}m"
    return f"{remainder}m"


def format_people(names: Iterable[str]) -> str | None:
    """Join names as ``A``, ``A and B`` or ``A, B and C``."""

    cleaned = [name.strip() for name in names if name and name.strip()]
    if not cleaned:
        return None
    if len(cleaned) == 1:
        return cleaned[0]
    return f"{', '.join(cleaned[:-1])} and {cleaned[-1]}"


def format_air_date(iso_value: str | None) -> str | None:
    """Render ``2019-06-08`` as ``08 Jun 2019``; unparseable values pass through."""

    if not iso_value:
        return None
    try:
        parsed = date.fromisoformat(iso_value[:10])
    except ValueError:
        return iso_value
    return f"{parsed.day:02d} {MONTH_ABBREVIATIONS[parsed.month - 1]} {parsed.year}"
