"""Time and night-range utilities.

A stay covers the half-open night range [start, end): the guest sleeps on
``start`` and leaves on ``end``.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterator


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Return the current UTC calendar date."""
    return utc_now().date()


def iter_nights(start: date, end: date) -> Iterator[date]:
    """Yield every night in [start, end)."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def count_nights(start: date, end: date) -> int:
    """Number of nights in [start, end); 0 when end <= start."""
    return max((end - start).days, 0)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return [first day of month, first day of next month)."""
    first = date(year, month, 1)
    if month == 12:
        return first, date(year + 1, 1, 1)
    return first, date(year, month + 1, 1)
