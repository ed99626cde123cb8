"""Stripe webhook signature validation and PaymentIntent event parsing.

Purpose:
- Validate the Stripe-Signature header with the Stripe SDK.
- Extract only what settlement needs (intent id, charge id, failure reason).
- Never log payload or signature.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import stripe

from staybook.observability.logging import get_logger

logger = get_logger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


class InvalidSignatureError(Exception):
    """Webhook signature validation failed."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass
class StripePaymentEvent:
    """Minimal data extracted from a Stripe webhook event."""

    event_id: str
    event_type: str
    intent_id: str | None
    payment_id: str | None
    failure_reason: str | None


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
) -> StripePaymentEvent:
    """Validate the webhook signature and extract PaymentIntent data.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: Value of Stripe-Signature header.
        webhook_secret: Webhook endpoint secret from Stripe.

    Returns:
        StripePaymentEvent.

    Raises:
        InvalidSignatureError: If signature validation fails.
        InvalidPayloadError: If event structure is invalid.
    """
    try:
        event = stripe.Webhook.construct_event(
            payload_bytes,
            signature_header,
            webhook_secret,
        )
    except stripe.SignatureVerificationError as e:
        # Do NOT log signature or payload
        logger.warning("stripe webhook signature verification failed")
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        logger.warning("stripe webhook payload parsing failed")
        raise InvalidPayloadError("Invalid payload") from e

    event_id = event.get("id")
    event_type = event.get("type")
    if not event_id or not event_type:
        raise InvalidPayloadError("Missing event id or type")

    intent = (event.get("data") or {}).get("object") or {}
    return StripePaymentEvent(
        event_id=event_id,
        event_type=event_type,
        intent_id=intent.get("id"),
        payment_id=_payment_id(intent),
        failure_reason=_failure_reason(intent),
    )


def _payment_id(intent: dict[str, Any]) -> str | None:
    """Charge id of a PaymentIntent, falling back to the intent id."""
    return intent.get("latest_charge") or intent.get("id")


def _failure_reason(intent: dict[str, Any]) -> str | None:
    error = intent.get("last_payment_error") or {}
    return error.get("message") or error.get("code")
