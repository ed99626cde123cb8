"""Wallet endpoints: balances, recent transactions, withdrawals."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from staybook.api.auth import CurrentUser, get_current_user
from staybook.domain.ledger import InsufficientBalanceError
from staybook.domain.withdrawals import PAYOUT_MODES, PayoutAccountMissingError, request_withdrawal
from staybook.infra.db import txn
from staybook.infra.repositories import wallets_repository
from staybook.observability.correlation import get_correlation_id

router = APIRouter(prefix="/wallets/me", tags=["wallets"])

ROLE_PATTERN = "^(guest|host)$"


class WithdrawRequest(BaseModel):
    amount: int = Field(..., gt=0)
    mode: str = Field("IMPS", pattern="^(" + "|".join(PAYOUT_MODES) + ")$")
    role: str = Field("host", pattern=ROLE_PATTERN)


@router.get("")
def get_my_wallet(
    role: str = Query("guest", pattern=ROLE_PATTERN),
    limit: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Wallet for the given role plus its latest transactions.

    A wallet that was never credited reads as zero balances.
    """
    with txn() as cur:
        wallet = wallets_repository.get_wallet(cur, user_id=user.id, role=role)
        transactions = (
            wallets_repository.list_transactions(cur, wallet_id=wallet["id"], limit=limit)
            if wallet
            else []
        )

    if wallet is None:
        wallet = {
            "id": None,
            "user_id": user.id,
            "role": role,
            "balance": 0,
            "hold_balance": 0,
            "commission": 0,
            "total_earnings": 0,
            "currency": "INR",
        }

    return {
        "wallet": wallet,
        "transactions": [
            {**t, "created_at": t["created_at"].isoformat() if t["created_at"] else None}
            for t in transactions
        ],
    }


@router.post("/withdraw", status_code=202)
def withdraw(
    body: WithdrawRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Withdraw spendable balance to the payout account on file."""
    try:
        return request_withdrawal(
            user_id=user.id,
            role=body.role,
            amount=body.amount,
            mode=body.mode,
            correlation_id=get_correlation_id(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PayoutAccountMissingError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InsufficientBalanceError:
        raise HTTPException(status_code=409, detail="Insufficient balance")
