"""Events repository - ticketed events and their bookings.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor


def get_event(cur: PgCursor, event_id: str) -> dict[str, Any] | None:
    cur.execute(
        """
        SELECT id, organizer_id, title, price_per_attendee, capacity, attendees, starts_at
        FROM events
        WHERE id = %s
        """,
        (event_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return {
        "id": str(row[0]),
        "organizer_id": str(row[1]),
        "title": row[2],
        "price_per_attendee": row[3],
        "capacity": row[4],
        "attendees": row[5],
        "starts_at": row[6],
    }


def reserve_seats(cur: PgCursor, *, event_id: str, attendees: int) -> bool:
    """Add attendees only while capacity allows.

    Returns:
        True if the seats were taken.
    """
    cur.execute(
        """
        UPDATE events
        SET attendees = attendees + %s
        WHERE id = %s AND attendees + %s <= capacity
        """,
        (attendees, event_id, attendees),
    )
    return cur.rowcount == 1


def find_event_booking_id_by_payment_ref(cur: PgCursor, payment_ref: str) -> str | None:
    cur.execute("SELECT id FROM event_bookings WHERE payment_ref = %s", (payment_ref,))
    row = cur.fetchone()
    return str(row[0]) if row else None


def insert_event_booking(
    cur: PgCursor,
    *,
    public_id: str,
    event_id: str,
    guest_id: str,
    organizer_id: str,
    attendees: int,
    before_tax: int,
    tax: int,
    final_amount: int,
    payment_ref: str,
) -> str:
    """Insert a confirmed event booking.

    Returns:
        The new event booking id.
    """
    cur.execute(
        """
        INSERT INTO event_bookings (
            public_id, event_id, guest_id, organizer_id, attendees,
            before_tax, tax, final_amount, payment_ref
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            public_id,
            event_id,
            guest_id,
            organizer_id,
            attendees,
            before_tax,
            tax,
            final_amount,
            payment_ref,
        ),
    )
    return str(cur.fetchone()[0])
