"""Quotes - amount breakdown for a stay, computed from stored calendar nights.

A quote produces a pricing snapshot that is sealed with an HMAC. Checkout
accepts only an untampered snapshot and the booking later stores the
snapshot's breakdown verbatim, so the guest pays exactly what was quoted even
if prices change in between.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.calendar import CalendarConflictError, validate_range
from staybook.domain.pricing import (
    DiscountRules,
    ExtraFeatureUnavailableError,
    compute_discounts,
    compute_extras,
)
from staybook.infra.hashing import sign_snapshot, verify_snapshot
from staybook.infra.platform_settings import PlatformSettings
from staybook.infra.repositories import calendar_repository
from staybook.infra.time import iter_nights, utc_now

SNAPSHOT_VERSION = 1


class QuoteValidationError(Exception):
    """Raised when quote input is invalid (extras, start in the past)."""

    pass


class SnapshotTamperedError(Exception):
    """Raised when a pricing snapshot does not match its seal."""

    pass


class InconsistentSnapshotError(Exception):
    """Raised when a snapshot's lines do not add up to its final amount."""

    pass


def compute_amount_breakdown(
    nights: list[dict[str, Any]],
    discount_lines: list[dict[str, Any]],
    extra_lines: list[dict[str, Any]],
) -> dict[str, int]:
    """Add up nightly prices, discounts and extras.

    ``tax`` is the platform fee part: the fee-inclusive total minus the
    pre-fee total.
    """
    before_tax = sum(n["price_before_fee"] for n in nights)
    with_tax = sum(n["price_with_fee"] for n in nights)
    discounts = sum(d["amount"] for d in discount_lines)
    extras = sum(e["total_amount"] for e in extra_lines)

    return {
        "before_tax": before_tax,
        "tax": with_tax - before_tax,
        "with_tax": with_tax,
        "discounts": discounts,
        "extra_features": extras,
        "final_amount": max(with_tax - discounts + extras, 0),
    }


def build_quote(
    cur: PgCursor,
    *,
    unit: dict[str, Any],
    start: date,
    end: date,
    extras: list[dict[str, Any]] | None,
    settings: PlatformSettings,
    today: date,
) -> dict[str, Any]:
    """Quote a stay from the current calendar rows.

    Args:
        cur: Database cursor.
        unit: Unit dict (units_repository.get_unit).
        start: First night.
        end: Checkout date (exclusive).
        extras: Requested extra features.
        settings: Settings snapshot the prices were computed against.
        today: Current date, for last-minute discounts.

    Returns:
        {"snapshot": dict, "signature": str}

    Raises:
        InvalidDateRangeError: Empty or reversed range.
        CalendarConflictError: A night is missing or not available.
        QuoteValidationError: Invalid extras or a stay starting in the past.
    """
    nights_count = validate_range(start, end)
    if start < today:
        raise QuoteValidationError("stay cannot start in the past")

    rows = calendar_repository.list_nights(cur, unit_id=unit["id"], start=start, end=end)
    unavailable = [
        {"night": r["night"], "status": r["status"]} for r in rows if r["status"] != "available"
    ]
    if len(rows) != nights_count or unavailable:
        seen = {r["night"] for r in rows}
        missing = [
            {"night": n, "status": "unseeded"}
            for n in iter_nights(start, end)
            if n not in seen
        ]
        raise CalendarConflictError(
            "requested nights are not available",
            conflicts=sorted(unavailable + missing, key=lambda c: c["night"]),
        )

    night_lines = [
        {
            "night": r["night"].isoformat(),
            "price_before_fee": r["price_before_fee"],
            "price_with_fee": r["price_with_fee"],
            "price_source": r["price_source"],
        }
        for r in rows
    ]
    with_tax = sum(n["price_with_fee"] for n in night_lines)

    discount_lines = compute_discounts(
        with_tax=with_tax,
        start=start,
        nights=nights_count,
        today=today,
        rules=DiscountRules.from_json(unit.get("discounts")),
        is_new_listing=bool(unit.get("is_new_listing")),
    )
    try:
        extra_lines = compute_extras(extras or [], unit.get("extra_features"), nights_count)
    except ExtraFeatureUnavailableError as e:
        raise QuoteValidationError(str(e)) from e

    snapshot = {
        "v": SNAPSHOT_VERSION,
        "unit_id": unit["id"],
        "host_id": unit["host_id"],
        "start": start.isoformat(),
        "end": end.isoformat(),
        "nights": night_lines,
        "discounts": discount_lines,
        "extra_features": extra_lines,
        "amount_breakdown": compute_amount_breakdown(night_lines, discount_lines, extra_lines),
        "fee_percent": str(settings.unit_fee_percent),
        "settings_version": settings.version,
        "currency": settings.currency,
        "quoted_at": utc_now().isoformat(),
    }
    return {"snapshot": snapshot, "signature": sign_snapshot(snapshot)}


def open_snapshot(snapshot: dict[str, Any], signature: str | None) -> dict[str, Any]:
    """Verify a snapshot echoed back by a client and return it.

    Raises:
        SnapshotTamperedError: Seal mismatch or missing signature.
        InconsistentSnapshotError: Lines do not add up to the final amount.
    """
    if not verify_snapshot(snapshot, signature):
        raise SnapshotTamperedError("pricing snapshot signature mismatch")

    check_snapshot_consistency(snapshot)
    return snapshot


def check_snapshot_consistency(snapshot: dict[str, Any]) -> dict[str, int]:
    """Recompute the breakdown from the snapshot's own lines and compare.

    Returns:
        The snapshot's amount breakdown.

    Raises:
        InconsistentSnapshotError: If any total differs.
    """
    try:
        expected = compute_amount_breakdown(
            snapshot["nights"], snapshot["discounts"], snapshot["extra_features"]
        )
        breakdown = {k: int(v) for k, v in snapshot["amount_breakdown"].items()}
    except (KeyError, TypeError, ValueError) as e:
        raise InconsistentSnapshotError(f"malformed pricing snapshot: {e}") from e

    if breakdown != expected:
        raise InconsistentSnapshotError("pricing snapshot totals do not add up")
    return breakdown


def snapshot_dates(snapshot: dict[str, Any]) -> tuple[date, date]:
    """The (start, end) night range a snapshot was quoted for."""
    return date.fromisoformat(snapshot["start"]), date.fromisoformat(snapshot["end"])
