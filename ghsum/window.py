"""
Inclusive date windows over record timestamps.

Comparison is by calendar date in UTC, not by instant: a record stamped
``2024-01-31T23:59:59Z`` is inside a window ending ``2024-01-31``. Both
sources must go through the same function or the per-source counts and
the merged view will disagree.
"""

from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

from .types import parse_date, parse_utc_timestamp

T = TypeVar("T")

DateLike = Union[str, date]


def record_date(timestamp: Union[str, datetime]) -> date:
    """UTC calendar date of a timestamp string or datetime."""
    if isinstance(timestamp, str):
        timestamp = parse_utc_timestamp(timestamp)
    elif timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.date()


def in_window(timestamp: Union[str, datetime], start: DateLike, end: DateLike) -> bool:
    """True if the timestamp's date is within [start, end]."""
    return parse_date(start) <= record_date(timestamp) <= parse_date(end)


def filter_window(
    items: Iterable[T],
    start: DateLike,
    end: DateLike,
    timestamp_of: Callable[[T], Optional[Any]],
) -> list[T]:
    """Keep items whose timestamp is within the window, in input order.

    Items whose timestamp is missing or unreadable are dropped.
    """
    lo, hi = parse_date(start), parse_date(end)
    kept = []
    for item in items:
        try:
            ts = timestamp_of(item)
            if not ts:
                continue
            day = record_date(ts)
        except (AttributeError, TypeError, ValueError):
            continue
        if lo <= day <= hi:
            kept.append(item)
    return kept
