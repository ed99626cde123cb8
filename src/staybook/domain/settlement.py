"""Settlement - a confirmed gateway payment becomes exactly one booking.

Every webhook delivery for a payment runs the same transaction:
1. Claim the settlement record (pending -> paid, conditional UPDATE)
2. If nothing was pending, stop: retry or out-of-order delivery
3. Skip if a booking already references the record
4. Create the booking (claims the nights) and credit the ledger

The claim and the booking commit together, so a crash between them leaves the
record pending and the gateway's redelivery settles it. When the nights were
taken between checkout and payment, the booking work is rolled back to a
savepoint and the record stays paid with a settlement error, because the
money has been captured and needs a refund.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.domain import bookings, event_bookings, ledger
from staybook.domain.calendar import CalendarConflictError, InvalidDateRangeError
from staybook.domain.quote import InconsistentSnapshotError
from staybook.infra.db import savepoint, txn
from staybook.infra.notifications import (
    BOOKING_CREATED,
    EVENT_BOOKING_CREATED,
    SETTLEMENT_NEEDS_REFUND,
    notify,
)
from staybook.infra.repositories import (
    bookings_repository,
    events_repository,
    settlements_repository,
    units_repository,
)
from staybook.infra.repositories.outbox_repository import emit_event
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

GATEWAYS = ("stripe", "razorpay")

ERROR_CALENDAR_CONFLICT = "calendar_conflict"
ERROR_UNIT_NOT_FOUND = "unit_not_found"
ERROR_INVALID_SNAPSHOT = "invalid_snapshot"
ERROR_EVENT_NOT_FOUND = "event_not_found"
ERROR_EVENT_FULL = "event_full"


def flag_for_refund(
    cur: PgCursor,
    record: dict[str, Any],
    *,
    error: str,
    correlation_id: str | None = None,
) -> bool:
    """Mark a paid record that produced no booking and ask for a refund.

    The outbox event is written in the same transaction as the flag, once per
    record.

    Returns:
        True if this call set the flag.
    """
    flagged = settlements_repository.flag_settlement_error(
        cur, record_id=record["id"], error=error
    )
    if not flagged:
        return False

    emit_event(
        cur,
        event_type=SETTLEMENT_NEEDS_REFUND,
        aggregate_type="settlement_record",
        aggregate_id=record["id"],
        payload={
            "gateway": record["gateway"],
            "gateway_payment_id": record["gateway_payment_id"],
            "amount": record["amount"],
            "currency": record["currency"],
            "reason": error,
        },
        correlation_id=correlation_id,
    )
    logger.warning(
        "settlement needs refund",
        extra={
            "extra_fields": safe_log_context(
                record_id=record["id"],
                reason=error,
                correlationId=correlation_id,
            )
        },
    )
    return True


def _settle_unit_booking(
    cur: PgCursor,
    record: dict[str, Any],
    correlation_id: str | None,
) -> dict[str, Any]:
    existing = bookings_repository.find_booking_id_by_payment_ref(cur, record["id"])
    if existing is not None:
        return {"status": "already_settled", "booking_id": existing}

    unit = units_repository.get_unit(cur, record["subject_id"])
    if unit is None:
        flag_for_refund(cur, record, error=ERROR_UNIT_NOT_FOUND, correlation_id=correlation_id)
        return {"status": "needs_refund", "reason": ERROR_UNIT_NOT_FOUND}

    snapshot = record["metadata"].get("pricing_snapshot") or {}
    try:
        with savepoint(cur, "settle_booking"):
            booking = bookings.create(
                cur,
                guest_id=record["user_id"],
                unit=unit,
                snapshot=snapshot,
                payment_ref=record["id"],
            )
            breakdown = booking["amount_breakdown"]
            ledger.credit_for_booking(
                cur,
                booking_id=booking["id"],
                booking_type=ledger.BOOKING_TYPE_UNIT,
                host_id=booking["host_id"],
                guest_id=booking["guest_id"],
                final_amount=breakdown["final_amount"],
                tax=breakdown["tax"],
                currency=booking["currency"],
            )
    except CalendarConflictError:
        flag_for_refund(
            cur, record, error=ERROR_CALENDAR_CONFLICT, correlation_id=correlation_id
        )
        return {"status": "needs_refund", "reason": ERROR_CALENDAR_CONFLICT}
    except (InconsistentSnapshotError, InvalidDateRangeError):
        flag_for_refund(
            cur, record, error=ERROR_INVALID_SNAPSHOT, correlation_id=correlation_id
        )
        return {"status": "needs_refund", "reason": ERROR_INVALID_SNAPSHOT}

    return {
        "status": "settled",
        "booking_id": booking["id"],
        "public_id": booking["public_id"],
        "booking_status": booking["status"],
        "host_id": booking["host_id"],
    }


def _settle_event_booking(
    cur: PgCursor,
    record: dict[str, Any],
    correlation_id: str | None,
) -> dict[str, Any]:
    existing = events_repository.find_event_booking_id_by_payment_ref(cur, record["id"])
    if existing is not None:
        return {"status": "already_settled", "booking_id": existing}

    try:
        with savepoint(cur, "settle_event_booking"):
            booking = event_bookings.settle_event_booking(cur, record)
    except event_bookings.EventNotFoundError:
        flag_for_refund(cur, record, error=ERROR_EVENT_NOT_FOUND, correlation_id=correlation_id)
        return {"status": "needs_refund", "reason": ERROR_EVENT_NOT_FOUND}
    except event_bookings.EventFullError:
        flag_for_refund(cur, record, error=ERROR_EVENT_FULL, correlation_id=correlation_id)
        return {"status": "needs_refund", "reason": ERROR_EVENT_FULL}

    return {
        "status": "settled",
        "booking_id": booking["booking_id"],
        "public_id": booking["public_id"],
    }


def settle(
    cur: PgCursor,
    record: dict[str, Any],
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Dispatch a freshly claimed record to its subject type.

    Returns:
        {"status": "settled" | "already_settled" | "needs_refund", ...}

    Raises:
        ValueError: Unknown subject type.
    """
    subject_type = record["subject_type"]
    if subject_type == settlements_repository.SUBJECT_UNIT_BOOKING:
        return _settle_unit_booking(cur, record, correlation_id)
    if subject_type == settlements_repository.SUBJECT_EVENT_BOOKING:
        return _settle_event_booking(cur, record, correlation_id)
    raise ValueError(f"Unknown settlement subject type: {subject_type}")


def process_payment_success(
    *,
    gateway: str,
    gateway_order_id: str,
    gateway_payment_id: str | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Claim and settle a successful payment.

    Args:
        gateway: stripe or razorpay.
        gateway_order_id: Stripe PaymentIntent id or Razorpay order id.
        gateway_payment_id: Charge / payment id reported by the gateway.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        {"status": "duplicate"} when nothing was pending under that key,
        otherwise the result of ``settle`` plus "record_id".
    """
    with txn() as cur:
        record = settlements_repository.claim_pending(
            cur,
            gateway=gateway,
            gateway_order_id=gateway_order_id,
            gateway_payment_id=gateway_payment_id,
        )
        if record is None:
            logger.debug(
                "settlement claim no-op",
                extra={
                    "extra_fields": safe_log_context(
                        gateway=gateway,
                        gateway_order_id=gateway_order_id,
                        correlationId=correlation_id,
                    )
                },
            )
            return {"status": "duplicate"}

        result = settle(cur, record, correlation_id)

    result["record_id"] = record["id"]
    logger.info(
        "payment settled",
        extra={
            "extra_fields": safe_log_context(
                gateway=gateway,
                record_id=record["id"],
                status=result["status"],
                booking_id=result.get("booking_id"),
                correlationId=correlation_id,
            )
        },
    )

    if result["status"] == "settled":
        if record["subject_type"] == settlements_repository.SUBJECT_UNIT_BOOKING:
            notify(
                BOOKING_CREATED,
                aggregate_type="booking",
                aggregate_id=result["booking_id"],
                payload={
                    "public_id": result["public_id"],
                    "status": result["booking_status"],
                    "host_id": result["host_id"],
                },
                correlation_id=correlation_id,
            )
        else:
            notify(
                EVENT_BOOKING_CREATED,
                aggregate_type="event_booking",
                aggregate_id=result["booking_id"],
                payload={"public_id": result["public_id"]},
                correlation_id=correlation_id,
            )
    return result


def process_payment_failure(
    *,
    gateway: str,
    gateway_order_id: str,
    reason: str | None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Mark a pending settlement record failed. No booking or ledger effects.

    Returns:
        {"status": "failed", "record_id"} or {"status": "duplicate"}.
    """
    with txn() as cur:
        record = settlements_repository.mark_failed(
            cur,
            gateway=gateway,
            gateway_order_id=gateway_order_id,
            reason=reason,
        )

    if record is None:
        logger.debug(
            "settlement failure no-op",
            extra={
                "extra_fields": safe_log_context(
                    gateway=gateway,
                    gateway_order_id=gateway_order_id,
                    correlationId=correlation_id,
                )
            },
        )
        return {"status": "duplicate"}

    logger.info(
        "payment failed",
        extra={
            "extra_fields": safe_log_context(
                gateway=gateway,
                record_id=record["id"],
                correlationId=correlation_id,
            )
        },
    )
    return {"status": "failed", "record_id": record["id"]}
