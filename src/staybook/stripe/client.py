"""Thin wrapper around the Stripe SDK.

Purpose:
- Encapsulate Stripe API calls so domain code doesn't import stripe.* directly.
- Accept idempotency_key for safe retries.
- Never log full Stripe payloads (only IDs + correlation metadata).
"""

from __future__ import annotations

import os
from typing import Any

import stripe

from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)


class StripeClient:
    """Wrapper for Stripe PaymentIntent operations.

    Usage:
        client = StripeClient()  # reads STRIPE_SECRET_KEY from env
        intent = client.create_payment_intent(
            amount_subunits=220000,
            currency="inr",
            idempotency_key="settlement:abc123:intent",
            metadata={"settlement_id": "abc123"},
        )
    """

    def __init__(self, api_key: str | None = None) -> None:
        """Initialize the Stripe client.

        Raises:
            RuntimeError: If no API key is provided or found in environment.
        """
        self._api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not self._api_key:
            raise RuntimeError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )

    def create_payment_intent(
        self,
        *,
        amount_subunits: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a PaymentIntent for a checkout.

        Args:
            amount_subunits: Amount in the currency's smallest unit.
            currency: Currency code (e.g., 'inr').
            idempotency_key: Idempotency key for safe retries.
            metadata: Metadata attached to the intent (settlement id, subject).
            correlation_id: Optional correlation ID for logging.

        Returns:
            Dict with intent_id, client_secret and status.
        """
        client = stripe.StripeClient(self._api_key)

        params: dict[str, Any] = {
            "amount": amount_subunits,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
        }
        if metadata:
            params["metadata"] = metadata

        intent = client.v1.payment_intents.create(
            params=params,
            options={"idempotency_key": idempotency_key},
        )

        logger.info(
            "stripe payment intent created",
            extra={
                "extra_fields": safe_log_context(
                    intent_id=intent.id,
                    correlationId=correlation_id,
                )
            },
        )

        return {
            "intent_id": intent.id,
            "client_secret": intent.client_secret,
            "status": intent.status,
        }
