"""Calendar store - per-night availability and price for every unit.

All functions take the caller's cursor so that calendar changes commit or roll
back together with the booking and ledger writes of the same operation.
"""

from __future__ import annotations

import os
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.pricing import UnitPricingRules, compute_night_price
from staybook.infra.repositories import calendar_repository
from staybook.infra.time import count_nights, iter_nights
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 365


class InvalidDateRangeError(Exception):
    """Raised when a night range is empty or reversed."""

    pass


class CalendarConflictError(Exception):
    """Raised when requested nights are not all available."""

    def __init__(self, message: str, conflicts: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []


def _window_days() -> int:
    return int(os.environ.get("CALENDAR_WINDOW_DAYS", str(DEFAULT_WINDOW_DAYS)))


def forward_window(today: date) -> tuple[date, date]:
    """The rolling seeding window [today, today + CALENDAR_WINDOW_DAYS)."""
    return today, today + timedelta(days=_window_days())


def validate_range(start: date, end: date) -> int:
    """Check a night range and return its length.

    Raises:
        InvalidDateRangeError: If end is not after start.
    """
    if end <= start:
        raise InvalidDateRangeError(f"end ({end}) must be after start ({start})")
    return count_nights(start, end)


def seed(
    cur: PgCursor,
    *,
    unit_id: str,
    rules: UnitPricingRules,
    start: date,
    end: date,
    fee_percent: Decimal,
) -> int:
    """Create missing nights in [start, end) as available at the computed price.

    Existing nights are never modified, so calling this repeatedly over
    overlapping ranges is safe.

    Returns:
        Number of nights created.
    """
    prices = [compute_night_price(night, rules, fee_percent) for night in iter_nights(start, end)]
    inserted = calendar_repository.insert_missing_nights(cur, unit_id=unit_id, prices=prices)

    logger.info(
        "calendar seeded",
        extra={
            "extra_fields": safe_log_context(
                unit_id=unit_id,
                start=start.isoformat(),
                end=end.isoformat(),
                inserted=inserted,
            )
        },
    )
    return inserted


def reprice(
    cur: PgCursor,
    *,
    unit_id: str,
    rules: UnitPricingRules,
    start: date,
    end: date,
    fee_percent: Decimal,
) -> int:
    """Recompute prices of base/weekend-priced nights that are not booked.

    Manual prices and booked nights are left as they are.

    Returns:
        Number of nights updated.
    """
    nights = calendar_repository.list_repriceable_nights(
        cur, unit_id=unit_id, start=start, end=end
    )
    prices = [compute_night_price(night, rules, fee_percent) for night in nights]
    updated = calendar_repository.update_night_prices(cur, unit_id=unit_id, prices=prices)

    logger.info(
        "calendar repriced",
        extra={
            "extra_fields": safe_log_context(
                unit_id=unit_id,
                start=start.isoformat(),
                end=end.isoformat(),
                fee_percent=str(fee_percent),
                updated=updated,
            )
        },
    )
    return updated


def check_availability(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
) -> list[dict[str, Any]]:
    """Nights in [start, end) that cannot be booked.

    Returns:
        Conflicting nights with their status (booked, blocked, or unseeded);
        empty when the whole range is available.
    """
    validate_range(start, end)
    return calendar_repository.find_unavailable_nights(
        cur, unit_id=unit_id, start=start, end=end
    )


def mark_booked(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
    booking_id: str,
) -> None:
    """Claim every night in [start, end) for a booking, all or nothing.

    A single conditional update flips only available nights. If fewer nights
    than requested were flipped, the caller's transaction must be rolled back;
    the raised error carries the conflicting nights.

    Raises:
        InvalidDateRangeError: If the range is empty.
        CalendarConflictError: If any night was not available.
    """
    expected = validate_range(start, end)
    claimed = calendar_repository.claim_nights(
        cur, unit_id=unit_id, start=start, end=end, booking_id=booking_id
    )

    if claimed != expected:
        conflicts = calendar_repository.find_unavailable_nights(
            cur, unit_id=unit_id, start=start, end=end, exclude_booking_id=booking_id
        )
        logger.warning(
            "calendar claim conflict",
            extra={
                "extra_fields": safe_log_context(
                    unit_id=unit_id,
                    booking_id=booking_id,
                    expected=expected,
                    claimed=claimed,
                )
            },
        )
        raise CalendarConflictError(
            f"{expected - claimed} of {expected} nights are not available",
            conflicts=conflicts,
        )


def release(cur: PgCursor, *, booking_id: str) -> int:
    """Return every night held by booking_id to available. Idempotent."""
    return calendar_repository.release_booking_nights(cur, booking_id=booking_id)


def _split_result(requested: Iterable[date], updated: list[date]) -> dict[str, list[date]]:
    updated_set = set(updated)
    return {
        "updated": updated,
        "skipped": sorted(d for d in set(requested) if d not in updated_set),
    }


def set_manual_price(
    cur: PgCursor,
    *,
    unit_id: str,
    nights: list[date],
    price_before_fee: int,
    price_with_fee: int,
) -> dict[str, list[date]]:
    """Override the price of specific nights; booked nights are skipped.

    Returns:
        {"updated": [...], "skipped": [...]}; skipped covers booked and
        unseeded nights.
    """
    if price_before_fee < 0 or price_with_fee < 0:
        raise ValueError("prices must be non-negative")

    updated = calendar_repository.set_manual_prices(
        cur,
        unit_id=unit_id,
        nights=nights,
        price_before_fee=price_before_fee,
        price_with_fee=price_with_fee,
    )
    return _split_result(nights, updated)


def set_availability(
    cur: PgCursor,
    *,
    unit_id: str,
    nights: list[date],
    status: str,
    note: str | None = None,
) -> dict[str, list[date]]:
    """Block or unblock nights; booked nights are skipped.

    Returns:
        {"updated": [...], "skipped": [...]}.
    """
    updated = calendar_repository.set_nights_status(
        cur, unit_id=unit_id, nights=nights, status=status, note=note
    )
    return _split_result(nights, updated)
