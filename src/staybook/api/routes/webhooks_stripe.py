"""Stripe webhook route - PaymentIntent outcomes settle checkout payments.

Security rules:
- Validate Stripe-Signature on every request.
- Never log payload or signature header.
- Return 5xx on unexpected errors so Stripe redelivers.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Header, Request, Response

from staybook.domain.settlement import process_payment_failure, process_payment_success
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import id_prefix, safe_log_context
from staybook.stripe.webhook import (
    PAYMENT_FAILED,
    PAYMENT_SUCCEEDED,
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _get_webhook_secret() -> str:
    """Get Stripe webhook secret from environment."""
    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        raise RuntimeError("STRIPE_WEBHOOK_SECRET not configured")
    return secret


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
) -> Response:
    """Receive Stripe events.

    Returns:
        200 "ok" when settled, "duplicate" for redeliveries, "ignored" for
        event types we do not handle.
        400 on signature or payload errors.
        500 on configuration or processing errors.
    """
    correlation_id = get_correlation_id()
    payload_bytes = await request.body()

    try:
        webhook_secret = _get_webhook_secret()
    except RuntimeError:
        logger.error(
            "webhook secret not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="server configuration error")

    try:
        event = verify_and_extract(payload_bytes, stripe_signature, webhook_secret)
    except InvalidSignatureError:
        return Response(status_code=400, content="invalid signature")
    except InvalidPayloadError:
        logger.warning(
            "stripe payload invalid",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "stripe webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event_id_prefix=id_prefix(event.event_id),
                event_type=event.event_type,
            )
        },
    )

    if event.event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED):
        return Response(status_code=200, content="ignored")

    if not event.intent_id:
        return Response(status_code=400, content="event missing object id")

    if event.event_type == PAYMENT_SUCCEEDED:
        result = process_payment_success(
            gateway="stripe",
            gateway_order_id=event.intent_id,
            gateway_payment_id=event.payment_id,
            correlation_id=correlation_id,
        )
    else:
        result = process_payment_failure(
            gateway="stripe",
            gateway_order_id=event.intent_id,
            reason=event.failure_reason,
            correlation_id=correlation_id,
        )

    return Response(
        status_code=200,
        content="duplicate" if result["status"] == "duplicate" else "ok",
    )
