"""Razorpay Orders and RazorpayX Payouts over HTTP.

Security: never log account numbers or full responses; only ids.
"""

from __future__ import annotations

import os
from typing import Any

import requests

from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

API_BASE_URL = "https://api.razorpay.com/v1"

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10


class RazorpayClient:
    """Wrapper for Razorpay order and payout creation.

    Usage:
        client = RazorpayClient()  # reads RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET
        order = client.create_order(
            amount_subunits=220000,
            currency="INR",
            receipt="settlement-id",
        )
    """

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str = API_BASE_URL,
    ) -> None:
        """Initialize the client.

        Raises:
            RuntimeError: If credentials are not provided or found in environment.
        """
        self._key_id = key_id or os.environ.get("RAZORPAY_KEY_ID")
        self._key_secret = key_secret or os.environ.get("RAZORPAY_KEY_SECRET")
        if not self._key_id or not self._key_secret:
            raise RuntimeError(
                "Razorpay credentials not provided. "
                "Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        self._base_url = base_url.rstrip("/")

    @property
    def key_id(self) -> str:
        return self._key_id

    def _post(
        self,
        path: str,
        body: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = requests.post(
            f"{self._base_url}{path}",
            json=body,
            auth=(self._key_id, self._key_secret),
            headers=headers,
            timeout=HTTP_TIMEOUT,
        )
        response.raise_for_status()
        return response.json()

    def create_order(
        self,
        *,
        amount_subunits: int,
        currency: str,
        receipt: str,
        notes: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create an order the checkout widget pays against.

        Returns:
            Dict with order_id, amount and currency.

        Raises:
            requests.HTTPError: Razorpay rejected the request.
        """
        order = self._post(
            "/orders",
            {
                "amount": amount_subunits,
                "currency": currency.upper(),
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        logger.info(
            "razorpay order created",
            extra={
                "extra_fields": safe_log_context(
                    order_id=order.get("id"),
                    correlationId=correlation_id,
                )
            },
        )
        return {
            "order_id": order["id"],
            "amount": order.get("amount", amount_subunits),
            "currency": order.get("currency", currency.upper()),
        }

    def create_payout(
        self,
        *,
        fund_account_id: str,
        amount_subunits: int,
        currency: str,
        mode: str,
        reference_id: str,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a RazorpayX payout for a pending withdrawal.

        ``reference_id`` is the withdrawal transaction id; payout webhooks
        echo it back. It doubles as the idempotency key.

        Raises:
            RuntimeError: RAZORPAYX_ACCOUNT_NUMBER not configured.
            requests.HTTPError: Razorpay rejected the request.
        """
        account_number = os.environ.get("RAZORPAYX_ACCOUNT_NUMBER")
        if not account_number:
            raise RuntimeError("RAZORPAYX_ACCOUNT_NUMBER not configured")

        payout = self._post(
            "/payouts",
            {
                "account_number": account_number,
                "fund_account_id": fund_account_id,
                "amount": amount_subunits,
                "currency": currency.upper(),
                "mode": mode,
                "purpose": "payout",
                "queue_if_low_balance": True,
                "reference_id": reference_id,
            },
            headers={"X-Payout-Idempotency": reference_id},
        )
        logger.info(
            "razorpay payout created",
            extra={
                "extra_fields": safe_log_context(
                    payout_id=payout.get("id"),
                    reference_id=reference_id,
                    correlationId=correlation_id,
                )
            },
        )
        return {"payout_id": payout["id"], "status": payout.get("status")}
