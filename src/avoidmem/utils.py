"""Shared utilities."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

import orjson

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60.0 * 60.0 * 24.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode()


def json_loads_or(raw: str | bytes | None, default: Any) -> Any:
    """Decode a JSON column, falling back to ``default`` on bad input.

    The fallback must have the same container type as the expected payload,
    so a column holding an object where a list is expected also degrades.
    """
    if not raw:
        return default
    try:
        value = orjson.loads(raw)
    except orjson.JSONDecodeError:
        logger.warning("Malformed JSON column, using empty value: %.80r", raw)
        return default
    if not isinstance(value, type(default)):
        logger.warning("Unexpected JSON column type %s, using empty value", type(value).__name__)
        return default
    return value


def parse_iso(s: str) -> datetime:
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(s))


def days_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


def round_half_up(value: float) -> int:
    """Round like ``Math.round``: halves go up, not to even."""
    return int(math.floor(value + 0.5))


def unique(items: list[str]) -> list[str]:
    """De-duplicate preserving first occurrence."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def format_date(dt: datetime) -> str:
    """Short month/day/year date used in prompt lines."""
    return f"{dt.month}/{dt.day}/{dt.year}"
