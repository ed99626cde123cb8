"""Tests for wallet withdrawals and payout webhooks."""

from __future__ import annotations

from contextlib import contextmanager
from unittest.mock import MagicMock, patch

import pytest
import requests

import staybook.domain.withdrawals as withdrawals_module
from staybook.domain.ledger import InsufficientBalanceError

MOD = "staybook.domain.withdrawals"


@pytest.fixture
def mock_cur():
    cur = MagicMock()
    cur.fetchone.return_value = ("fa_123",)
    return cur


@pytest.fixture
def patched_txn(mock_cur):
    @contextmanager
    def mock_txn():
        yield mock_cur

    with patch(f"{MOD}.txn", mock_txn):
        yield mock_cur


@pytest.fixture
def payout_client(monkeypatch):
    client = MagicMock()
    client.create_payout.return_value = {"payout_id": "pout_1", "status": "processing"}
    monkeypatch.setattr(withdrawals_module, "_get_payout_client", lambda: client)
    return client


@pytest.fixture
def ledger_withdraw():
    with patch(
        f"{MOD}.ledger.withdraw",
        return_value={"transaction_id": "txn-1", "wallet_id": "w1", "amount": 500, "status": "pending"},
    ) as withdraw, patch(
        f"{MOD}.wallets_repository.get_wallet", return_value={"id": "w1", "currency": "INR"}
    ):
        yield withdraw


class TestRequestWithdrawal:
    def test_payout_requested(self, patched_txn, payout_client, ledger_withdraw):
        with patch(f"{MOD}.wallets_repository.set_external_ref") as set_ref:
            result = withdrawals_module.request_withdrawal(
                user_id="host-1", role="host", amount=500, mode="IMPS"
            )

        assert result == {"transaction_id": "txn-1", "amount": 500, "status": "pending"}
        kwargs = payout_client.create_payout.call_args.kwargs
        assert kwargs["fund_account_id"] == "fa_123"
        assert kwargs["amount_subunits"] == 50000
        assert kwargs["reference_id"] == "txn-1"
        set_ref.assert_called_once_with(patched_txn, transaction_id="txn-1", external_ref="pout_1")

    def test_refused_payout_restores_balance(self, patched_txn, payout_client, ledger_withdraw):
        payout_client.create_payout.side_effect = requests.HTTPError("422")

        with patch(f"{MOD}.ledger.resolve_withdrawal") as resolve:
            result = withdrawals_module.request_withdrawal(
                user_id="host-1", role="host", amount=500, mode="IMPS"
            )

        assert result["status"] == "failed"
        assert resolve.call_args.kwargs["succeeded"] is False
        assert resolve.call_args.kwargs["transaction_id"] == "txn-1"

    def test_no_fund_account(self, patched_txn, mock_cur, payout_client, ledger_withdraw):
        mock_cur.fetchone.return_value = (None,)

        with pytest.raises(withdrawals_module.PayoutAccountMissingError):
            withdrawals_module.request_withdrawal(
                user_id="host-1", role="host", amount=500, mode="IMPS"
            )
        ledger_withdraw.assert_not_called()
        payout_client.create_payout.assert_not_called()

    def test_insufficient_balance(self, patched_txn, payout_client):
        with patch(f"{MOD}.ledger.withdraw", side_effect=InsufficientBalanceError("low")):
            with pytest.raises(InsufficientBalanceError):
                withdrawals_module.request_withdrawal(
                    user_id="host-1", role="host", amount=500, mode="IMPS"
                )
        payout_client.create_payout.assert_not_called()

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            withdrawals_module.request_withdrawal(
                user_id="host-1", role="host", amount=500, mode="CHEQUE"
            )


class TestHandlePayoutEvent:
    def test_processed_completes(self, patched_txn):
        with patch(
            f"{MOD}.wallets_repository.get_transaction_by_external_ref", return_value={"id": "txn-1"}
        ), patch(
            f"{MOD}.ledger.resolve_withdrawal", return_value={"id": "txn-1", "status": "completed"}
        ) as resolve:
            result = withdrawals_module.handle_payout_event(
                event_type="payout.processed", payout_id="pout_1", reference_id=None
            )

        assert result == {"status": "completed", "transaction_id": "txn-1"}
        assert resolve.call_args.kwargs["succeeded"] is True

    def test_failed_uses_reference_id(self, patched_txn):
        with patch(
            f"{MOD}.wallets_repository.get_transaction_by_external_ref", return_value=None
        ), patch(
            f"{MOD}.ledger.resolve_withdrawal", return_value={"id": "txn-2", "status": "failed"}
        ) as resolve:
            result = withdrawals_module.handle_payout_event(
                event_type="payout.failed",
                payout_id="pout_9",
                reference_id="txn-2",
                reason="beneficiary bank down",
            )

        assert result["status"] == "failed"
        assert resolve.call_args.kwargs["transaction_id"] == "txn-2"
        assert resolve.call_args.kwargs["succeeded"] is False

    def test_redelivery_is_duplicate(self, patched_txn):
        with patch(
            f"{MOD}.wallets_repository.get_transaction_by_external_ref", return_value={"id": "txn-1"}
        ), patch(f"{MOD}.ledger.resolve_withdrawal", return_value=None):
            result = withdrawals_module.handle_payout_event(
                event_type="payout.processed", payout_id="pout_1", reference_id="txn-1"
            )

        assert result == {"status": "duplicate"}

    def test_unknown_withdrawal(self, patched_txn):
        with patch(
            f"{MOD}.wallets_repository.get_transaction_by_external_ref", return_value=None
        ):
            result = withdrawals_module.handle_payout_event(
                event_type="payout.processed", payout_id="pout_x", reference_id=None
            )

        assert result == {"status": "unknown"}
