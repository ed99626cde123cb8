"""Razorpay webhook adapter - verify signature and extract payment/payout data.

Razorpay signs the raw JSON body with HMAC-SHA256 (hex) and sends it in
X-Razorpay-Signature. The body must be verified byte for byte, before any
JSON parsing.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"
PAYOUT_PROCESSED = "payout.processed"
PAYOUT_FAILED = "payout.failed"
PAYOUT_REVERSED = "payout.reversed"

PAYMENT_EVENTS = (PAYMENT_CAPTURED, PAYMENT_FAILED)
PAYOUT_EVENTS = (PAYOUT_PROCESSED, PAYOUT_FAILED, PAYOUT_REVERSED)


class InvalidPayloadError(Exception):
    """Raised when the Razorpay payload has an invalid shape."""

    pass


class SignatureVerificationError(Exception):
    """Raised when HMAC signature verification fails."""

    pass


@dataclass
class RazorpayEvent:
    """Fields settlement and payout resolution need from a webhook."""

    event_type: str
    order_id: str | None = None
    payment_id: str | None = None
    payout_id: str | None = None
    reference_id: str | None = None
    failure_reason: str | None = None


def compute_signature(payload_bytes: bytes, secret: str) -> str:
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=payload_bytes,
        digestmod=hashlib.sha256,
    ).hexdigest()


def verify_signature(payload_bytes: bytes, signature_header: str | None, secret: str) -> None:
    """Verify a Razorpay webhook signature.

    Args:
        payload_bytes: Raw request body bytes.
        signature_header: X-Razorpay-Signature header value.
        secret: Webhook secret configured in the Razorpay dashboard.

    Raises:
        SignatureVerificationError: If signature is missing or does not match.
    """
    if not signature_header:
        raise SignatureVerificationError("missing signature header")

    if not hmac.compare_digest(compute_signature(payload_bytes, secret), signature_header):
        raise SignatureVerificationError("signature mismatch")


def parse_event(payload_bytes: bytes) -> RazorpayEvent:
    """Parse a verified Razorpay webhook body.

    Raises:
        InvalidPayloadError: Body is not JSON or lacks the entity for its event.
    """
    try:
        payload = json.loads(payload_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidPayloadError("invalid JSON body") from e

    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload must be an object")

    event_type = payload.get("event")
    if not event_type or not isinstance(event_type, str):
        raise InvalidPayloadError("missing event type")

    if event_type in PAYMENT_EVENTS:
        payment = _entity(payload, "payment")
        if not payment.get("order_id"):
            raise InvalidPayloadError("payment without order_id")
        return RazorpayEvent(
            event_type=event_type,
            order_id=payment["order_id"],
            payment_id=payment.get("id"),
            failure_reason=payment.get("error_description"),
        )

    if event_type in PAYOUT_EVENTS:
        payout = _entity(payload, "payout")
        return RazorpayEvent(
            event_type=event_type,
            payout_id=payout.get("id"),
            reference_id=payout.get("reference_id"),
            failure_reason=(payout.get("status_details") or {}).get("description"),
        )

    return RazorpayEvent(event_type=event_type)


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    entity = ((payload.get("payload") or {}).get(name) or {}).get("entity")
    if not isinstance(entity, dict):
        raise InvalidPayloadError(f"missing {name} entity")
    return entity
