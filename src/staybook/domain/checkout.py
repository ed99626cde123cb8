"""Checkout - open a pending settlement record and a gateway order for it.

The settlement record is committed before the gateway is called so that a
webhook arriving for the new order always finds its record. The gateway
order id is attached in a second short transaction.
"""

from __future__ import annotations

from typing import Any

from staybook.domain.bookings import UnitNotFoundError
from staybook.domain.calendar import CalendarConflictError, check_availability
from staybook.domain.event_bookings import EventFullError, EventNotFoundError, price_tickets
from staybook.domain.quote import QuoteValidationError, open_snapshot, snapshot_dates
from staybook.infra.db import txn
from staybook.infra.platform_settings import load_platform_settings
from staybook.infra.repositories import events_repository, settlements_repository, units_repository
from staybook.infra.time import utc_now, utc_today
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context
from staybook.razorpay.client import RazorpayClient
from staybook.stripe.client import StripeClient

logger = get_logger(__name__)

GATEWAY_STRIPE = "stripe"
GATEWAY_RAZORPAY = "razorpay"
GATEWAYS = (GATEWAY_STRIPE, GATEWAY_RAZORPAY)


class UnsupportedGatewayError(Exception):
    """Raised for a gateway name that is not configured."""

    pass


class GatewayOrderError(Exception):
    """Raised when the gateway refused to create the order."""

    pass


def _get_stripe_client() -> StripeClient:
    """Get Stripe client (allows test injection)."""
    return StripeClient()


def _get_razorpay_client() -> RazorpayClient:
    """Get Razorpay client (allows test injection)."""
    return RazorpayClient()


def _check_gateway(gateway: str) -> None:
    if gateway not in GATEWAYS:
        raise UnsupportedGatewayError(f"Unsupported gateway: {gateway}")


def _create_gateway_order(
    *,
    gateway: str,
    record_id: str,
    amount: int,
    currency: str,
    correlation_id: str | None,
) -> dict[str, Any]:
    """Create the order at the gateway. Amounts go out in subunits."""
    try:
        if gateway == GATEWAY_STRIPE:
            intent = _get_stripe_client().create_payment_intent(
                amount_subunits=amount * 100,
                currency=currency,
                idempotency_key=f"settlement:{record_id}:intent",
                metadata={"settlement_id": record_id},
                correlation_id=correlation_id,
            )
            return {
                "gateway_order_id": intent["intent_id"],
                "client_secret": intent["client_secret"],
            }

        client = _get_razorpay_client()
        order = client.create_order(
            amount_subunits=amount * 100,
            currency=currency,
            receipt=record_id,
            notes={"settlement_id": record_id},
            correlation_id=correlation_id,
        )
        return {"gateway_order_id": order["order_id"], "key_id": client.key_id}
    except RuntimeError:
        raise
    except Exception as e:
        logger.exception(
            "gateway order creation failed",
            extra={
                "extra_fields": safe_log_context(
                    gateway=gateway,
                    record_id=record_id,
                    correlationId=correlation_id,
                )
            },
        )
        raise GatewayOrderError(f"{gateway} order creation failed") from e


def _open_order(
    *,
    gateway: str,
    record_id: str,
    amount: int,
    currency: str,
    correlation_id: str | None,
) -> dict[str, Any]:
    order = _create_gateway_order(
        gateway=gateway,
        record_id=record_id,
        amount=amount,
        currency=currency,
        correlation_id=correlation_id,
    )
    with txn() as cur:
        settlements_repository.set_gateway_order_id(
            cur, record_id=record_id, gateway_order_id=order["gateway_order_id"]
        )

    logger.info(
        "checkout opened",
        extra={
            "extra_fields": safe_log_context(
                gateway=gateway,
                record_id=record_id,
                gateway_order_id=order["gateway_order_id"],
                amount=amount,
                correlationId=correlation_id,
            )
        },
    )
    return {
        "settlement_id": record_id,
        "gateway": gateway,
        "amount": amount,
        "currency": currency,
        **order,
    }


def start_unit_checkout(
    *,
    user_id: str,
    gateway: str,
    snapshot: dict[str, Any],
    signature: str | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Start paying for a quoted stay.

    Args:
        user_id: Paying guest.
        gateway: stripe or razorpay.
        snapshot: Pricing snapshot returned by the quote.
        signature: Seal returned with the snapshot.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        Dict with settlement_id, gateway_order_id, amount, currency and the
        client handle (Stripe client_secret or Razorpay key_id).

    Raises:
        UnsupportedGatewayError: Unknown gateway.
        SnapshotTamperedError / InconsistentSnapshotError: Bad snapshot.
        QuoteValidationError: Stay starts in the past.
        UnitNotFoundError: Unit no longer exists.
        CalendarConflictError: Nights were taken since the quote.
        GatewayOrderError: The gateway refused the order.
    """
    _check_gateway(gateway)
    snapshot = open_snapshot(snapshot, signature)
    start, end = snapshot_dates(snapshot)
    if start < utc_today():
        raise QuoteValidationError("stay cannot start in the past")

    amount = int(snapshot["amount_breakdown"]["final_amount"])
    currency = snapshot.get("currency", "INR")

    with txn() as cur:
        unit = units_repository.get_unit(cur, snapshot["unit_id"])
        if unit is None:
            raise UnitNotFoundError(f"Unit {snapshot['unit_id']} not found")

        conflicts = check_availability(cur, unit_id=unit["id"], start=start, end=end)
        if conflicts:
            raise CalendarConflictError("requested nights are not available", conflicts=conflicts)

        record_id = settlements_repository.insert_settlement_record(
            cur,
            gateway=gateway,
            subject_type=settlements_repository.SUBJECT_UNIT_BOOKING,
            subject_id=unit["id"],
            user_id=user_id,
            amount=amount,
            tax_amount=int(snapshot["amount_breakdown"]["tax"]),
            currency=currency,
            metadata={"pricing_snapshot": snapshot, "checkout_at": utc_now().isoformat()},
        )

    return _open_order(
        gateway=gateway,
        record_id=record_id,
        amount=amount,
        currency=currency,
        correlation_id=correlation_id,
    )


def start_event_checkout(
    *,
    user_id: str,
    event_id: str,
    gateway: str,
    attendees: int,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Start paying for event tickets.

    Raises:
        UnsupportedGatewayError: Unknown gateway.
        ValueError: attendees not positive.
        EventNotFoundError: Unknown event.
        EventFullError: Not enough seats left right now.
        GatewayOrderError: The gateway refused the order.
    """
    _check_gateway(gateway)

    with txn() as cur:
        event = events_repository.get_event(cur, event_id)
        if event is None:
            raise EventNotFoundError(f"Event {event_id} not found")
        if event["attendees"] + attendees > event["capacity"]:
            raise EventFullError(f"Event {event_id} has fewer than {attendees} seats left")

        settings = load_platform_settings(cur)
        amounts = price_tickets(event, attendees=attendees, fee_percent=settings.event_fee_percent)

        record_id = settlements_repository.insert_settlement_record(
            cur,
            gateway=gateway,
            subject_type=settlements_repository.SUBJECT_EVENT_BOOKING,
            subject_id=event["id"],
            user_id=user_id,
            amount=amounts["final_amount"],
            tax_amount=amounts["tax"],
            currency=settings.currency,
            metadata={
                "attendees": attendees,
                "before_tax": amounts["before_tax"],
                "tax": amounts["tax"],
                "fee_percent": str(settings.event_fee_percent),
                "settings_version": settings.version,
            },
        )

    return _open_order(
        gateway=gateway,
        record_id=record_id,
        amount=amounts["final_amount"],
        currency=settings.currency,
        correlation_id=correlation_id,
    )
