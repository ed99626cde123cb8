"""Settlement records repository - one row per checkout payment attempt.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

VALID_STATUSES = {"pending", "paid", "failed"}
SUBJECT_UNIT_BOOKING = "unit_booking"
SUBJECT_EVENT_BOOKING = "event_booking"

_RECORD_COLUMNS = """
    id, gateway, gateway_order_id, gateway_payment_id, status, subject_type,
    subject_id, user_id, amount, tax_amount, currency, metadata
"""


def _row_to_record(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "gateway": row[1],
        "gateway_order_id": row[2],
        "gateway_payment_id": row[3],
        "status": row[4],
        "subject_type": row[5],
        "subject_id": str(row[6]),
        "user_id": str(row[7]),
        "amount": row[8],
        "tax_amount": row[9],
        "currency": row[10],
        "metadata": row[11] or {},
    }


def insert_settlement_record(
    cur: PgCursor,
    *,
    gateway: str,
    subject_type: str,
    subject_id: str,
    user_id: str,
    amount: int,
    tax_amount: int,
    currency: str,
    metadata: dict[str, Any],
) -> str:
    """Insert a pending settlement record.

    Returns:
        The new record id (UUID string).
    """
    cur.execute(
        """
        INSERT INTO settlement_records (
            gateway, subject_type, subject_id, user_id,
            amount, tax_amount, currency, metadata
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            gateway,
            subject_type,
            subject_id,
            user_id,
            amount,
            tax_amount,
            currency,
            json.dumps(metadata, default=str),
        ),
    )
    return str(cur.fetchone()[0])


def set_gateway_order_id(cur: PgCursor, *, record_id: str, gateway_order_id: str) -> None:
    """Attach the gateway's order / intent id to a pending record."""
    cur.execute(
        """
        UPDATE settlement_records
        SET gateway_order_id = %s
        WHERE id = %s AND status = 'pending' AND gateway_order_id IS NULL
        """,
        (gateway_order_id, record_id),
    )


def claim_pending(
    cur: PgCursor,
    *,
    gateway: str,
    gateway_order_id: str,
    gateway_payment_id: str | None,
) -> dict[str, Any] | None:
    """Atomically move a record from pending to paid.

    The row lock taken by the UPDATE makes a concurrent duplicate claim wait
    for this transaction, after which it no longer matches ``status = 'pending'``.

    Returns:
        The claimed record, or None when nothing was pending under that key
        (already paid, already failed, or unknown).
    """
    cur.execute(
        f"""
        UPDATE settlement_records
        SET status = 'paid', gateway_payment_id = %s, paid_at = now()
        WHERE gateway = %s AND gateway_order_id = %s AND status = 'pending'
        RETURNING {_RECORD_COLUMNS}
        """,
        (gateway_payment_id, gateway, gateway_order_id),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_record(row)


def mark_failed(
    cur: PgCursor,
    *,
    gateway: str,
    gateway_order_id: str,
    reason: str | None,
) -> dict[str, Any] | None:
    """Atomically move a record from pending to failed.

    Returns:
        The failed record, or None if it was not pending.
    """
    cur.execute(
        f"""
        UPDATE settlement_records
        SET status = 'failed', failure_reason = %s, failed_at = now()
        WHERE gateway = %s AND gateway_order_id = %s AND status = 'pending'
        RETURNING {_RECORD_COLUMNS}
        """,
        (reason, gateway, gateway_order_id),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_record(row)


def get_settlement_record(cur: PgCursor, record_id: str) -> dict[str, Any] | None:
    cur.execute(f"SELECT {_RECORD_COLUMNS} FROM settlement_records WHERE id = %s", (record_id,))
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_record(row)


def flag_settlement_error(cur: PgCursor, *, record_id: str, error: str) -> bool:
    """Record why a paid record could not be turned into a booking.

    Only the first error is kept.

    Returns:
        True if the flag was set by this call.
    """
    cur.execute(
        """
        UPDATE settlement_records
        SET settlement_error = %s
        WHERE id = %s AND status = 'paid' AND settlement_error IS NULL
        """,
        (error, record_id),
    )
    return cur.rowcount == 1


def list_unsettled_paid_records(cur: PgCursor, *, paid_before: datetime) -> list[dict[str, Any]]:
    """Paid records older than ``paid_before`` that produced no booking and are not flagged."""
    cur.execute(
        """
        SELECT s.id, s.gateway, s.gateway_order_id, s.gateway_payment_id, s.status,
               s.subject_type, s.subject_id, s.user_id, s.amount, s.tax_amount,
               s.currency, s.metadata
        FROM settlement_records s
        WHERE s.status = 'paid'
          AND s.settlement_error IS NULL
          AND s.paid_at < %s
          AND NOT EXISTS (SELECT 1 FROM bookings b WHERE b.payment_ref = s.id)
          AND NOT EXISTS (SELECT 1 FROM event_bookings e WHERE e.payment_ref = s.id)
        ORDER BY s.paid_at
        """,
        (paid_before,),
    )
    return [_row_to_record(row) for row in cur.fetchall()]
