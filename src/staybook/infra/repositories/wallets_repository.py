"""Wallets repository - balances per (user, role) and the wallet transaction log.

Uses raw SQL with psycopg2 (no ORM). Balance columns are only changed
through ``adjust_wallet`` and ``debit_balance``.
"""

from __future__ import annotations

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

WALLET_ROLES = ("guest", "host", "platform")
TRANSACTION_TYPES = ("booking_earning", "refund", "withdrawal", "transfer")
TRANSACTION_STATUSES = ("pending", "completed", "failed", "reversed")

_WALLET_COLUMNS = "id, user_id, role, balance, hold_balance, commission, total_earnings, currency"
_TXN_COLUMNS = """
    id, wallet_id, amount, type, status, booking_id, booking_type,
    external_ref, metadata, created_at
"""


def _row_to_wallet(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "user_id": str(row[1]),
        "role": row[2],
        "balance": row[3],
        "hold_balance": row[4],
        "commission": row[5],
        "total_earnings": row[6],
        "currency": row[7],
    }


def _row_to_transaction(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "wallet_id": str(row[1]),
        "amount": row[2],
        "type": row[3],
        "status": row[4],
        "booking_id": str(row[5]) if row[5] else None,
        "booking_type": row[6],
        "external_ref": row[7],
        "metadata": row[8] or {},
        "created_at": row[9],
    }


def get_wallet(cur: PgCursor, *, user_id: str, role: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE user_id = %s AND role = %s",
        (user_id, role),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_wallet(row)


def get_or_create_wallet(
    cur: PgCursor,
    *,
    user_id: str,
    role: str,
    currency: str = "INR",
) -> dict[str, Any]:
    """Return the (user, role) wallet, creating an empty one first if needed.

    The returned row is locked FOR UPDATE until the transaction ends.
    """
    if role not in WALLET_ROLES:
        raise ValueError(f"Invalid wallet role: {role}")

    cur.execute(
        """
        INSERT INTO wallets (user_id, role, currency)
        VALUES (%s, %s, %s)
        ON CONFLICT (user_id, role) DO NOTHING
        """,
        (user_id, role, currency),
    )
    cur.execute(
        f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE user_id = %s AND role = %s FOR UPDATE",
        (user_id, role),
    )
    return _row_to_wallet(cur.fetchone())


def adjust_wallet(
    cur: PgCursor,
    *,
    wallet_id: str,
    balance_delta: int = 0,
    hold_delta: int = 0,
    commission_delta: int = 0,
    earnings_delta: int = 0,
) -> dict[str, Any]:
    """Apply deltas to a wallet; hold_balance and commission never go below zero.

    Returns:
        The wallet after the update.
    """
    cur.execute(
        f"""
        UPDATE wallets
        SET balance = balance + %s,
            hold_balance = GREATEST(hold_balance + %s, 0),
            commission = GREATEST(commission + %s, 0),
            total_earnings = GREATEST(total_earnings + %s, 0),
            updated_at = now()
        WHERE id = %s
        RETURNING {_WALLET_COLUMNS}
        """,
        (balance_delta, hold_delta, commission_delta, earnings_delta, wallet_id),
    )
    return _row_to_wallet(cur.fetchone())


def debit_balance(cur: PgCursor, *, wallet_id: str, amount: int) -> bool:
    """Subtract amount from balance only if the balance covers it.

    Returns:
        True if debited.
    """
    cur.execute(
        """
        UPDATE wallets
        SET balance = balance - %s, updated_at = now()
        WHERE id = %s AND balance >= %s
        """,
        (amount, wallet_id, amount),
    )
    return cur.rowcount == 1


def insert_transaction(
    cur: PgCursor,
    *,
    wallet_id: str,
    amount: int,
    txn_type: str,
    status: str,
    booking_id: str | None = None,
    booking_type: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> str:
    """Append a wallet transaction.

    Returns:
        The new transaction id.
    """
    cur.execute(
        """
        INSERT INTO wallet_transactions (
            wallet_id, amount, type, status, booking_id, booking_type, metadata
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            wallet_id,
            amount,
            txn_type,
            status,
            booking_id,
            booking_type,
            json.dumps(metadata or {}, default=str),
        ),
    )
    return str(cur.fetchone()[0])


def find_booking_earning(
    cur: PgCursor,
    *,
    booking_id: str,
    booking_type: str,
) -> dict[str, Any] | None:
    """The booking_earning transaction credited to the host for a booking."""
    cur.execute(
        """
        SELECT t.id, t.wallet_id, t.amount, t.type, t.status, t.booking_id,
               t.booking_type, t.external_ref, t.metadata, t.created_at
        FROM wallet_transactions t
        JOIN wallets w ON w.id = t.wallet_id
        WHERE t.booking_id = %s AND t.booking_type = %s
          AND t.type = 'booking_earning' AND w.role = 'host'
        ORDER BY t.created_at
        LIMIT 1
        """,
        (booking_id, booking_type),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_transaction(row)


def set_external_ref(cur: PgCursor, *, transaction_id: str, external_ref: str) -> None:
    """Attach the payout provider's id to a withdrawal."""
    cur.execute(
        "UPDATE wallet_transactions SET external_ref = %s, updated_at = now() WHERE id = %s",
        (external_ref, transaction_id),
    )


def get_transaction_by_external_ref(cur: PgCursor, external_ref: str) -> dict[str, Any] | None:
    cur.execute(
        f"SELECT {_TXN_COLUMNS} FROM wallet_transactions WHERE external_ref = %s",
        (external_ref,),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_transaction(row)


def resolve_pending_transaction(
    cur: PgCursor,
    *,
    transaction_id: str,
    txn_type: str,
    status: str,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Move a pending transaction of the given type to its final status.

    Returns:
        The resolved transaction, or None if it was not pending.
    """
    cur.execute(
        f"""
        UPDATE wallet_transactions
        SET status = %s,
            metadata = metadata || %s::jsonb,
            updated_at = now()
        WHERE id = %s AND type = %s AND status = 'pending'
        RETURNING {_TXN_COLUMNS}
        """,
        (status, json.dumps(metadata or {}, default=str), transaction_id, txn_type),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_transaction(row)


def list_transactions(cur: PgCursor, *, wallet_id: str, limit: int = 50) -> list[dict[str, Any]]:
    """Most recent transactions of a wallet."""
    cur.execute(
        f"""
        SELECT {_TXN_COLUMNS}
        FROM wallet_transactions
        WHERE wallet_id = %s
        ORDER BY created_at DESC
        LIMIT %s
        """,
        (wallet_id, limit),
    )
    return [_row_to_transaction(row) for row in cur.fetchall()]
