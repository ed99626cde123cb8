"""Bookings repository - persistence for unit bookings.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

_BOOKING_COLUMNS = """
    id, public_id, unit_id, guest_id, host_id, start_date, end_date, status,
    before_tax, tax, with_tax, discount_amount, extras_amount, final_amount,
    currency, payment_ref, cancelled_by, cancellation_reason, refund_amount,
    penalty_amount, penalty_percent, days_before_cancellation, cancelled_at,
    created_at
"""


def _row_to_booking(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "public_id": row[1],
        "unit_id": str(row[2]),
        "guest_id": str(row[3]),
        "host_id": str(row[4]),
        "start_date": row[5],
        "end_date": row[6],
        "status": row[7],
        "before_tax": row[8],
        "tax": row[9],
        "with_tax": row[10],
        "discount_amount": row[11],
        "extras_amount": row[12],
        "final_amount": row[13],
        "currency": row[14],
        "payment_ref": str(row[15]) if row[15] else None,
        "cancellation": {
            "is_cancelled": row[7] == "cancelled",
            "cancelled_by": row[16],
            "reason": row[17],
            "refund_amount": row[18],
            "penalty_amount": row[19],
            "penalty_percent": row[20],
            "days_before_cancellation": row[21],
            "cancelled_at": row[22],
        },
        "created_at": row[23],
    }


def next_public_number(cur: PgCursor) -> int:
    """Next value of the public booking number sequence."""
    cur.execute("SELECT nextval('booking_public_seq')")
    return cur.fetchone()[0]


def insert_booking(
    cur: PgCursor,
    *,
    public_id: str,
    unit_id: str,
    guest_id: str,
    host_id: str,
    start_date: date,
    end_date: date,
    status: str,
    breakdown: dict[str, int],
    currency: str,
    pricing_snapshot: dict[str, Any],
    payment_ref: str | None,
) -> str:
    """Insert a booking row.

    Returns:
        The new booking id (UUID string).
    """
    cur.execute(
        """
        INSERT INTO bookings (
            public_id, unit_id, guest_id, host_id, start_date, end_date, status,
            before_tax, tax, with_tax, discount_amount, extras_amount,
            final_amount, currency, pricing_snapshot, payment_ref
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            public_id,
            unit_id,
            guest_id,
            host_id,
            start_date,
            end_date,
            status,
            breakdown["before_tax"],
            breakdown["tax"],
            breakdown["with_tax"],
            breakdown["discounts"],
            breakdown["extra_features"],
            breakdown["final_amount"],
            currency,
            json.dumps(pricing_snapshot, default=str),
            payment_ref,
        ),
    )
    return str(cur.fetchone()[0])


def get_booking(
    cur: PgCursor,
    booking_id: str,
    *,
    for_update: bool = False,
) -> dict[str, Any] | None:
    """Get a booking by id, optionally locking the row."""
    query = f"SELECT {_BOOKING_COLUMNS} FROM bookings WHERE id = %s"
    if for_update:
        query += " FOR UPDATE"
    cur.execute(query, (booking_id,))
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_booking(row)


def find_booking_id_by_payment_ref(cur: PgCursor, payment_ref: str) -> str | None:
    """Id of the booking created from a settlement record, if any."""
    cur.execute("SELECT id FROM bookings WHERE payment_ref = %s", (payment_ref,))
    row = cur.fetchone()
    return str(row[0]) if row else None


def transition_status(
    cur: PgCursor,
    *,
    booking_id: str,
    from_statuses: tuple[str, ...],
    to_status: str,
) -> bool:
    """Conditionally move a booking to ``to_status``.

    Returns:
        True if the row was in one of ``from_statuses`` and was updated.
    """
    cur.execute(
        """
        UPDATE bookings
        SET status = %s, updated_at = now()
        WHERE id = %s AND status = ANY(%s)
        """,
        (to_status, booking_id, list(from_statuses)),
    )
    return cur.rowcount == 1


def record_cancellation(
    cur: PgCursor,
    *,
    booking_id: str,
    cancelled_by: str,
    reason: str,
    refund_amount: int,
    penalty_amount: int,
    penalty_percent: int,
    days_before: int,
) -> bool:
    """Cancel a pending or confirmed booking and fill the cancellation record.

    Returns:
        True if the booking was cancellable and is now cancelled.
    """
    cur.execute(
        """
        UPDATE bookings
        SET status = 'cancelled',
            cancelled_by = %s,
            cancellation_reason = %s,
            refund_amount = %s,
            penalty_amount = %s,
            penalty_percent = %s,
            days_before_cancellation = %s,
            cancelled_at = now(),
            updated_at = now()
        WHERE id = %s AND status IN ('pending', 'confirmed')
        """,
        (
            cancelled_by,
            reason,
            refund_amount,
            penalty_amount,
            penalty_percent,
            days_before,
            booking_id,
        ),
    )
    return cur.rowcount == 1


def complete_ended_bookings(cur: PgCursor, *, today: date) -> list[str]:
    """Mark confirmed bookings whose stay ended on or before today as completed.

    Returns:
        Ids of bookings that were completed.
    """
    cur.execute(
        """
        UPDATE bookings
        SET status = 'completed', updated_at = now()
        WHERE status = 'confirmed' AND end_date <= %s
        RETURNING id
        """,
        (today,),
    )
    return [str(row[0]) for row in cur.fetchall()]
