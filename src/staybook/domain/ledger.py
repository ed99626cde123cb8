"""Ledger - the only place wallet balances change.

Wallets are keyed by (user, role). A booking credits the host's hold balance
with the earnings (final amount minus the platform fee) and the platform fee
to commission; cancellation reverses exactly what was credited, never below
zero. Every movement appends a wallet transaction.

Functions take the caller's cursor; they never open their own transaction.
"""

from __future__ import annotations

import os
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.infra.repositories import wallets_repository
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

TXN_BOOKING_EARNING = "booking_earning"
TXN_REFUND = "refund"
TXN_WITHDRAWAL = "withdrawal"
TXN_TRANSFER = "transfer"

BOOKING_TYPE_UNIT = "unit"
BOOKING_TYPE_EVENT = "event"


class InsufficientBalanceError(Exception):
    """Raised when a wallet balance does not cover a withdrawal."""

    pass


def _get_platform_user_id() -> str:
    """User id that owns the platform wallet.

    Raises:
        RuntimeError: If PLATFORM_WALLET_USER_ID is not configured.
    """
    user_id = os.environ.get("PLATFORM_WALLET_USER_ID")
    if not user_id:
        raise RuntimeError("PLATFORM_WALLET_USER_ID not configured")
    return user_id


def credit_for_booking(
    cur: PgCursor,
    *,
    booking_id: str,
    booking_type: str,
    host_id: str,
    guest_id: str,
    final_amount: int,
    tax: int,
    currency: str,
) -> dict[str, Any]:
    """Credit host earnings and platform commission for a settled booking.

    earnings = final_amount - tax goes to the host's hold balance and
    tax goes to commission. The guest gets an audit-only transaction; the
    guest's money was captured by the gateway, not taken from the wallet.

    A second call for the same booking returns the first credit unchanged.

    Returns:
        {"earnings", "commission", "transaction_id", "already_credited"}
    """
    existing = wallets_repository.find_booking_earning(
        cur, booking_id=booking_id, booking_type=booking_type
    )
    if existing is not None:
        return {
            "earnings": existing["metadata"].get("earnings", existing["amount"]),
            "commission": existing["metadata"].get("commission", 0),
            "transaction_id": existing["id"],
            "already_credited": True,
        }

    earnings = final_amount - tax
    commission = tax

    host_wallet = wallets_repository.get_or_create_wallet(
        cur, user_id=host_id, role="host", currency=currency
    )
    wallets_repository.adjust_wallet(
        cur,
        wallet_id=host_wallet["id"],
        hold_delta=earnings,
        commission_delta=commission,
        earnings_delta=earnings,
    )
    txn_id = wallets_repository.insert_transaction(
        cur,
        wallet_id=host_wallet["id"],
        amount=earnings,
        txn_type=TXN_BOOKING_EARNING,
        status="completed",
        booking_id=booking_id,
        booking_type=booking_type,
        metadata={
            "earnings": earnings,
            "commission": commission,
            "final_amount": final_amount,
        },
    )

    guest_wallet = wallets_repository.get_or_create_wallet(
        cur, user_id=guest_id, role="guest", currency=currency
    )
    wallets_repository.insert_transaction(
        cur,
        wallet_id=guest_wallet["id"],
        amount=final_amount,
        txn_type=TXN_TRANSFER,
        status="completed",
        booking_id=booking_id,
        booking_type=booking_type,
        metadata={"kind": "booking_payment", "audit_only": True},
    )

    logger.info(
        "ledger credited for booking",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                booking_type=booking_type,
                earnings=earnings,
                commission=commission,
            )
        },
    )
    return {
        "earnings": earnings,
        "commission": commission,
        "transaction_id": txn_id,
        "already_credited": False,
    }


def reverse_for_cancellation(
    cur: PgCursor,
    *,
    booking_id: str,
    booking_type: str,
    guest_id: str,
    refund_amount: int,
    penalty_amount: int,
    currency: str,
) -> dict[str, Any]:
    """Undo a booking's credit and refund the guest.

    The host's hold balance and commission drop by exactly the amounts
    recorded on the booking_earning transaction, clamped at zero. The guest's
    spendable balance grows by refund_amount; a retained penalty goes to the
    platform wallet. Bookings that were never credited (manual bookings) move
    no money.

    Returns:
        {"reversed": bool, "earnings": int, "commission": int,
         "refund_amount": int, "penalty_amount": int}
    """
    earning = wallets_repository.find_booking_earning(
        cur, booking_id=booking_id, booking_type=booking_type
    )
    if earning is None:
        logger.info(
            "no ledger credit to reverse",
            extra={"extra_fields": safe_log_context(booking_id=booking_id)},
        )
        return {
            "reversed": False,
            "earnings": 0,
            "commission": 0,
            "refund_amount": 0,
            "penalty_amount": 0,
        }

    earnings = int(earning["metadata"].get("earnings", earning["amount"]))
    commission = int(earning["metadata"].get("commission", 0))

    host_wallet_id = earning["wallet_id"]
    wallets_repository.adjust_wallet(
        cur,
        wallet_id=host_wallet_id,
        hold_delta=-earnings,
        commission_delta=-commission,
        earnings_delta=-earnings,
    )
    wallets_repository.insert_transaction(
        cur,
        wallet_id=host_wallet_id,
        amount=earnings,
        txn_type=TXN_REFUND,
        status="completed",
        booking_id=booking_id,
        booking_type=booking_type,
        metadata={"hold_reversed": earnings, "commission_reversed": commission},
    )

    guest_wallet = wallets_repository.get_or_create_wallet(
        cur, user_id=guest_id, role="guest", currency=currency
    )
    wallets_repository.adjust_wallet(cur, wallet_id=guest_wallet["id"], balance_delta=refund_amount)
    wallets_repository.insert_transaction(
        cur,
        wallet_id=guest_wallet["id"],
        amount=refund_amount,
        txn_type=TXN_REFUND,
        status="completed",
        booking_id=booking_id,
        booking_type=booking_type,
        metadata={"penalty_amount": penalty_amount},
    )

    if penalty_amount > 0:
        platform_wallet = wallets_repository.get_or_create_wallet(
            cur, user_id=_get_platform_user_id(), role="platform", currency=currency
        )
        wallets_repository.adjust_wallet(
            cur, wallet_id=platform_wallet["id"], balance_delta=penalty_amount
        )
        wallets_repository.insert_transaction(
            cur,
            wallet_id=platform_wallet["id"],
            amount=penalty_amount,
            txn_type=TXN_TRANSFER,
            status="completed",
            booking_id=booking_id,
            booking_type=booking_type,
            metadata={"kind": "cancellation_penalty"},
        )

    logger.info(
        "ledger reversed for cancellation",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                earnings=earnings,
                commission=commission,
                refund_amount=refund_amount,
                penalty_amount=penalty_amount,
            )
        },
    )
    return {
        "reversed": True,
        "earnings": earnings,
        "commission": commission,
        "refund_amount": refund_amount,
        "penalty_amount": penalty_amount,
    }


def withdraw(
    cur: PgCursor,
    *,
    user_id: str,
    role: str,
    amount: int,
    mode: str,
) -> dict[str, Any]:
    """Debit a wallet's balance and record a pending withdrawal.

    The payout provider later reports the outcome through
    ``resolve_withdrawal``.

    Returns:
        {"transaction_id", "wallet_id", "amount", "status": "pending"}

    Raises:
        ValueError: If amount is not positive.
        InsufficientBalanceError: If the balance does not cover amount.
    """
    if amount <= 0:
        raise ValueError("withdrawal amount must be positive")

    wallet = wallets_repository.get_or_create_wallet(cur, user_id=user_id, role=role)
    if not wallets_repository.debit_balance(cur, wallet_id=wallet["id"], amount=amount):
        raise InsufficientBalanceError(
            f"balance {wallet['balance']} does not cover withdrawal of {amount}"
        )

    txn_id = wallets_repository.insert_transaction(
        cur,
        wallet_id=wallet["id"],
        amount=amount,
        txn_type=TXN_WITHDRAWAL,
        status="pending",
        metadata={"mode": mode, "purpose": "payout"},
    )
    return {
        "transaction_id": txn_id,
        "wallet_id": wallet["id"],
        "amount": amount,
        "status": "pending",
    }


def resolve_withdrawal(
    cur: PgCursor,
    *,
    transaction_id: str,
    succeeded: bool,
    reason: str | None = None,
) -> dict[str, Any] | None:
    """Settle a pending withdrawal; a failed payout restores the balance.

    Returns:
        The resolved transaction, or None if no pending withdrawal has that id.
    """
    resolved = wallets_repository.resolve_pending_transaction(
        cur,
        transaction_id=transaction_id,
        txn_type=TXN_WITHDRAWAL,
        status="completed" if succeeded else "failed",
        metadata={"failure_reason": reason} if reason else None,
    )
    if resolved is None:
        logger.debug(
            "withdrawal already resolved",
            extra={"extra_fields": safe_log_context(transaction_id=transaction_id)},
        )
        return None

    if not succeeded:
        wallets_repository.adjust_wallet(
            cur, wallet_id=resolved["wallet_id"], balance_delta=resolved["amount"]
        )

    logger.info(
        "withdrawal resolved",
        extra={
            "extra_fields": safe_log_context(
                transaction_id=transaction_id,
                status=resolved["status"],
            )
        },
    )
    return resolved
