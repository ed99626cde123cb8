"""Withdrawals - debit a wallet, then ask RazorpayX to pay it out.

The debit and the pending withdrawal transaction commit before the payout
request goes out. If RazorpayX refuses the payout, the withdrawal is resolved
as failed right away, which puts the amount back on the balance. Later
outcomes arrive as payout webhooks.
"""

from __future__ import annotations

from typing import Any

from staybook.domain import ledger
from staybook.infra.db import txn
from staybook.infra.repositories import wallets_repository
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context
from staybook.razorpay.client import RazorpayClient
from staybook.razorpay.webhook import PAYOUT_PROCESSED

logger = get_logger(__name__)

PAYOUT_MODES = ("IMPS", "NEFT", "RTGS", "UPI")


class PayoutAccountMissingError(Exception):
    """Raised when the user has no payout fund account on file."""

    pass


def _get_payout_client() -> RazorpayClient:
    """Get payout client (allows test injection)."""
    return RazorpayClient()


def _get_fund_account_id(cur: Any, user_id: str) -> str | None:
    cur.execute("SELECT payout_fund_account_id FROM users WHERE id = %s", (user_id,))
    row = cur.fetchone()
    return row[0] if row else None


def request_withdrawal(
    *,
    user_id: str,
    role: str,
    amount: int,
    mode: str,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Withdraw from a wallet's spendable balance.

    Returns:
        {"transaction_id", "amount", "status"} where status is pending while
        the payout is in flight, or failed if RazorpayX refused it.

    Raises:
        ValueError: Bad amount or mode.
        PayoutAccountMissingError: No fund account on file.
        InsufficientBalanceError: Balance does not cover amount.
    """
    if mode not in PAYOUT_MODES:
        raise ValueError(f"Unsupported payout mode: {mode}")

    with txn() as cur:
        fund_account_id = _get_fund_account_id(cur, user_id)
        if not fund_account_id:
            raise PayoutAccountMissingError("no payout account on file")
        withdrawal = ledger.withdraw(cur, user_id=user_id, role=role, amount=amount, mode=mode)
        wallet = wallets_repository.get_wallet(cur, user_id=user_id, role=role)

    transaction_id = withdrawal["transaction_id"]
    try:
        payout = _get_payout_client().create_payout(
            fund_account_id=fund_account_id,
            amount_subunits=amount * 100,
            currency=wallet["currency"] if wallet else "INR",
            mode=mode,
            reference_id=transaction_id,
            correlation_id=correlation_id,
        )
    except Exception:
        logger.exception(
            "payout request failed",
            extra={
                "extra_fields": safe_log_context(
                    transaction_id=transaction_id,
                    correlationId=correlation_id,
                )
            },
        )
        with txn() as cur:
            ledger.resolve_withdrawal(
                cur,
                transaction_id=transaction_id,
                succeeded=False,
                reason="payout_request_failed",
            )
        return {"transaction_id": transaction_id, "amount": amount, "status": "failed"}

    with txn() as cur:
        wallets_repository.set_external_ref(
            cur, transaction_id=transaction_id, external_ref=payout["payout_id"]
        )

    return {"transaction_id": transaction_id, "amount": amount, "status": "pending"}


def handle_payout_event(
    *,
    event_type: str,
    payout_id: str | None,
    reference_id: str | None,
    reason: str | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Resolve the withdrawal a payout webhook refers to.

    The withdrawal is found by the payout id, falling back to the reference
    id (the withdrawal transaction id). Repeated deliveries are no-ops.

    Returns:
        {"status": "completed" | "failed" | "duplicate" | "unknown"}
    """
    with txn() as cur:
        transaction_id = reference_id
        if payout_id:
            txn_row = wallets_repository.get_transaction_by_external_ref(cur, payout_id)
            if txn_row is not None:
                transaction_id = txn_row["id"]

        if not transaction_id:
            logger.warning(
                "payout event for unknown withdrawal",
                extra={"extra_fields": safe_log_context(payout_id=payout_id)},
            )
            return {"status": "unknown"}

        resolved = ledger.resolve_withdrawal(
            cur,
            transaction_id=transaction_id,
            succeeded=event_type == PAYOUT_PROCESSED,
            reason=reason,
        )

    if resolved is None:
        logger.debug(
            "payout event no-op",
            extra={
                "extra_fields": safe_log_context(
                    transaction_id=transaction_id,
                    correlationId=correlation_id,
                )
            },
        )
        return {"status": "duplicate"}
    return {"status": resolved["status"], "transaction_id": transaction_id}
