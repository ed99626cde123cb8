"""Razorpay webhook route - payment and payout outcomes.

Security rules:
- HMAC-SHA256 of the raw body is checked before anything is parsed.
- Never log payload or signature header.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Header, Request, Response

from staybook.domain.settlement import process_payment_failure, process_payment_success
from staybook.domain.withdrawals import handle_payout_event
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context
from staybook.razorpay.webhook import (
    PAYMENT_CAPTURED,
    PAYMENT_FAILED,
    PAYOUT_EVENTS,
    InvalidPayloadError,
    SignatureVerificationError,
    parse_event,
    verify_signature,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _get_webhook_secret() -> str:
    """Get Razorpay webhook secret from environment."""
    secret = os.environ.get("RAZORPAY_WEBHOOK_SECRET", "")
    if not secret:
        raise RuntimeError("RAZORPAY_WEBHOOK_SECRET not configured")
    return secret


@router.post("/webhooks/razorpay")
async def razorpay_webhook(
    request: Request,
    razorpay_signature: str | None = Header(None, alias="X-Razorpay-Signature"),
) -> Response:
    """Receive Razorpay events.

    Returns:
        200 "ok" / "duplicate" / "ignored".
        400 on signature or payload errors.
        500 on configuration or processing errors.
    """
    correlation_id = get_correlation_id()
    payload_bytes = await request.body()

    try:
        secret = _get_webhook_secret()
    except RuntimeError:
        logger.error(
            "webhook secret not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="server configuration error")

    try:
        verify_signature(payload_bytes, razorpay_signature, secret)
    except SignatureVerificationError:
        logger.warning(
            "razorpay signature validation failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid signature")

    try:
        event = parse_event(payload_bytes)
    except InvalidPayloadError:
        logger.warning(
            "razorpay payload invalid",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "razorpay webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event_type=event.event_type,
            )
        },
    )

    if event.event_type == PAYMENT_CAPTURED:
        result = process_payment_success(
            gateway="razorpay",
            gateway_order_id=event.order_id,
            gateway_payment_id=event.payment_id,
            correlation_id=correlation_id,
        )
    elif event.event_type == PAYMENT_FAILED:
        result = process_payment_failure(
            gateway="razorpay",
            gateway_order_id=event.order_id,
            reason=event.failure_reason,
            correlation_id=correlation_id,
        )
    elif event.event_type in PAYOUT_EVENTS:
        result = handle_payout_event(
            event_type=event.event_type,
            payout_id=event.payout_id,
            reference_id=event.reference_id,
            reason=event.failure_reason,
            correlation_id=correlation_id,
        )
    else:
        return Response(status_code=200, content="ignored")

    return Response(
        status_code=200,
        content="duplicate" if result["status"] == "duplicate" else "ok",
    )
