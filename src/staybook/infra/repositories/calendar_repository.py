"""Calendar repository - one row per (unit, night).

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from datetime import date
from typing import Any, Sequence

from psycopg2.extensions import cursor as PgCursor
from psycopg2.extras import execute_values

from staybook.domain.pricing import NightPrice

CALENDAR_STATUSES = ("available", "booked", "blocked")


def insert_missing_nights(
    cur: PgCursor,
    *,
    unit_id: str,
    prices: Sequence[NightPrice],
) -> int:
    """Insert available nights; nights that already exist are left untouched.

    Returns:
        Number of rows actually inserted.
    """
    if not prices:
        return 0

    rows = [
        (
            unit_id,
            p.night,
            p.price_before_fee,
            p.price_with_fee,
            p.price_source,
            p.is_weekend,
        )
        for p in prices
    ]
    execute_values(
        cur,
        """
        INSERT INTO calendar_nights (
            unit_id, night, price_before_fee, price_with_fee, price_source, is_weekend
        )
        VALUES %s
        ON CONFLICT (unit_id, night) DO NOTHING
        """,
        rows,
        page_size=len(rows),
    )
    return cur.rowcount


def list_repriceable_nights(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
) -> list[date]:
    """Lock and list nights in [start, end) that repricing may overwrite."""
    cur.execute(
        """
        SELECT night
        FROM calendar_nights
        WHERE unit_id = %s AND night >= %s AND night < %s
          AND status IN ('available', 'blocked')
          AND price_source IN ('base', 'weekend')
        ORDER BY night
        FOR UPDATE
        """,
        (unit_id, start, end),
    )
    return [row[0] for row in cur.fetchall()]


def update_night_prices(
    cur: PgCursor,
    *,
    unit_id: str,
    prices: Sequence[NightPrice],
) -> int:
    """Write recomputed prices for base/weekend-priced, non-booked nights.

    The status and price_source guard is repeated here so a row that became
    booked or manual is never overwritten.

    Returns:
        Number of rows updated.
    """
    if not prices:
        return 0

    rows = [
        (
            unit_id,
            p.night,
            p.price_before_fee,
            p.price_with_fee,
            p.price_source,
            p.is_weekend,
        )
        for p in prices
    ]
    execute_values(
        cur,
        """
        UPDATE calendar_nights AS c
        SET price_before_fee = v.price_before_fee,
            price_with_fee = v.price_with_fee,
            price_source = v.price_source,
            is_weekend = v.is_weekend,
            updated_at = now()
        FROM (VALUES %s) AS v (
            unit_id, night, price_before_fee, price_with_fee, price_source, is_weekend
        )
        WHERE c.unit_id = v.unit_id::uuid
          AND c.night = v.night
          AND c.status IN ('available', 'blocked')
          AND c.price_source IN ('base', 'weekend')
        """,
        rows,
        page_size=len(rows),
    )
    return cur.rowcount


def find_unavailable_nights(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
    exclude_booking_id: str | None = None,
) -> list[dict[str, Any]]:
    """Nights in [start, end) that are booked, blocked or were never seeded.

    Nights already held by ``exclude_booking_id`` are not reported.

    Returns:
        Ordered list of {"night": date, "status": str}; status is
        "unseeded" for a night with no calendar row.
    """
    cur.execute(
        """
        SELECT d::date AS night, COALESCE(c.status, 'unseeded') AS status
        FROM generate_series(%s::date, %s::date - 1, interval '1 day') AS d
        LEFT JOIN calendar_nights c
               ON c.unit_id = %s AND c.night = d::date
        WHERE (c.status IS NULL OR c.status <> 'available')
          AND NOT (COALESCE(c.status, '') = 'booked' AND c.booking_id::text = COALESCE(%s, ''))
        ORDER BY night
        """,
        (start, end, unit_id, exclude_booking_id),
    )
    return [{"night": row[0], "status": row[1]} for row in cur.fetchall()]


def claim_nights(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
    booking_id: str,
) -> int:
    """Flip every available night in [start, end) to booked for booking_id.

    Single conditional UPDATE: concurrent claims on the same rows serialize on
    the row locks, and the loser re-evaluates ``status = 'available'`` after
    the winner commits. The caller compares the returned count with the
    number of nights and rolls back on a shortfall.

    Returns:
        Number of nights claimed.
    """
    cur.execute(
        """
        UPDATE calendar_nights
        SET status = 'booked', booking_id = %s, note = NULL, updated_at = now()
        WHERE unit_id = %s AND night >= %s AND night < %s
          AND status = 'available'
        """,
        (booking_id, unit_id, start, end),
    )
    return cur.rowcount


def release_booking_nights(cur: PgCursor, *, booking_id: str) -> int:
    """Make every night held by booking_id available again.

    Returns:
        Number of nights released (0 when already released).
    """
    cur.execute(
        """
        UPDATE calendar_nights
        SET status = 'available', booking_id = NULL, updated_at = now()
        WHERE booking_id = %s
        """,
        (booking_id,),
    )
    return cur.rowcount


def set_manual_prices(
    cur: PgCursor,
    *,
    unit_id: str,
    nights: Sequence[date],
    price_before_fee: int,
    price_with_fee: int,
) -> list[date]:
    """Override price on the given nights unless they are booked.

    Returns:
        Nights that were updated.
    """
    cur.execute(
        """
        UPDATE calendar_nights
        SET price_before_fee = %s, price_with_fee = %s,
            price_source = 'manual', updated_at = now()
        WHERE unit_id = %s AND night = ANY(%s::date[])
          AND status <> 'booked'
        RETURNING night
        """,
        (price_before_fee, price_with_fee, unit_id, list(nights)),
    )
    return sorted(row[0] for row in cur.fetchall())


def set_nights_status(
    cur: PgCursor,
    *,
    unit_id: str,
    nights: Sequence[date],
    status: str,
    note: str | None = None,
) -> list[date]:
    """Block or unblock nights; booked nights are never touched.

    Returns:
        Nights that were updated.
    """
    if status not in ("available", "blocked"):
        raise ValueError(f"Invalid calendar status: {status}")

    cur.execute(
        """
        UPDATE calendar_nights
        SET status = %s, note = %s, updated_at = now()
        WHERE unit_id = %s AND night = ANY(%s::date[])
          AND status IN ('available', 'blocked')
        RETURNING night
        """,
        (status, note, unit_id, list(nights)),
    )
    return sorted(row[0] for row in cur.fetchall())


def list_nights(
    cur: PgCursor,
    *,
    unit_id: str,
    start: date,
    end: date,
) -> list[dict[str, Any]]:
    """Calendar rows in [start, end) with the holding booking's public id."""
    cur.execute(
        """
        SELECT c.night, c.status, c.price_before_fee, c.price_with_fee,
               c.price_source, c.is_weekend, c.note, b.public_id
        FROM calendar_nights c
        LEFT JOIN bookings b ON b.id = c.booking_id
        WHERE c.unit_id = %s AND c.night >= %s AND c.night < %s
        ORDER BY c.night
        """,
        (unit_id, start, end),
    )
    return [
        {
            "night": row[0],
            "status": row[1],
            "price_before_fee": row[2],
            "price_with_fee": row[3],
            "price_source": row[4],
            "is_weekend": row[5],
            "note": row[6],
            "booking_public_id": row[7],
        }
        for row in cur.fetchall()
    ]


def release_orphaned_nights(cur: PgCursor) -> list[str]:
    """Release nights still held by bookings that are cancelled.

    Returns:
        Booking ids whose nights were released.
    """
    cur.execute(
        """
        UPDATE calendar_nights AS c
        SET status = 'available', booking_id = NULL, updated_at = now()
        FROM bookings b
        WHERE b.id = c.booking_id AND b.status = 'cancelled'
        RETURNING b.id
        """
    )
    return sorted({str(row[0]) for row in cur.fetchall()})
