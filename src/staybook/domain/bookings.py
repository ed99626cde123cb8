"""Booking lifecycle - the only code that changes a booking's status.

States: pending -> confirmed -> completed, and pending/confirmed -> cancelled.
Nothing leaves cancelled or completed.

``create`` runs inside the caller's transaction (settlement or manual
booking). ``confirm``, ``cancel`` and ``complete_due_bookings`` own their
transaction: lock the booking, validate, then ledger reversal, calendar
release and status change all commit together.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.domain import calendar, ledger
from staybook.domain.cancellation_policy import compute_cancellation_terms
from staybook.domain.quote import build_quote, check_snapshot_consistency, snapshot_dates
from staybook.infra.db import txn
from staybook.infra.notifications import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    BOOKING_CREATED,
    notify,
)
from staybook.infra.platform_settings import load_platform_settings
from staybook.infra.repositories import bookings_repository, units_repository
from staybook.infra.time import utc_now, utc_today
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

PUBLIC_ID_PREFIX = "BK"


class BookingNotFoundError(Exception):
    """Raised when the booking does not exist."""

    pass


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed from the current status."""

    pass


class BookingNotCancellableError(Exception):
    """Raised when a booking is already cancelled or its stay has started."""

    pass


class ActorNotAllowedError(Exception):
    """Raised when the acting party may not perform the action."""

    pass


class UnitNotFoundError(Exception):
    """Raised when the unit does not exist."""

    pass


def format_public_booking_id(number: int) -> str:
    """Public booking reference: BK followed by at least five digits."""
    return f"{PUBLIC_ID_PREFIX}{number:05d}"


def create(
    cur: PgCursor,
    *,
    guest_id: str,
    unit: dict[str, Any],
    snapshot: dict[str, Any],
    payment_ref: str | None,
    initial_status: str | None = None,
) -> dict[str, Any]:
    """Create a booking from a pricing snapshot and claim its nights.

    The amount breakdown is copied from the snapshot as is; prices are not
    recomputed. Status is confirmed when the host auto-accepts this guest,
    pending otherwise, unless ``initial_status`` is given.

    Args:
        cur: Database cursor (within the caller's transaction).
        guest_id: Guest user id.
        unit: Unit dict.
        snapshot: Verified pricing snapshot from a quote.
        payment_ref: Settlement record id, or None for manual bookings.
        initial_status: Forced initial status (manual bookings).

    Returns:
        Dict with id, public_id, status, start_date, end_date, breakdown.

    Raises:
        InconsistentSnapshotError: If the snapshot totals do not add up.
        CalendarConflictError: If any night is no longer available.
    """
    breakdown = check_snapshot_consistency(snapshot)
    start, end = snapshot_dates(snapshot)
    calendar.validate_range(start, end)

    if initial_status is None:
        auto_accepted = units_repository.is_auto_accepted(
            cur, host_id=unit["host_id"], guest_id=guest_id
        )
        initial_status = STATUS_CONFIRMED if auto_accepted else STATUS_PENDING

    public_id = format_public_booking_id(bookings_repository.next_public_number(cur))
    booking_id = bookings_repository.insert_booking(
        cur,
        public_id=public_id,
        unit_id=unit["id"],
        guest_id=guest_id,
        host_id=unit["host_id"],
        start_date=start,
        end_date=end,
        status=initial_status,
        breakdown=breakdown,
        currency=snapshot.get("currency", "INR"),
        pricing_snapshot=snapshot,
        payment_ref=payment_ref,
    )

    calendar.mark_booked(cur, unit_id=unit["id"], start=start, end=end, booking_id=booking_id)

    logger.info(
        "booking created",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                public_id=public_id,
                unit_id=unit["id"],
                status=initial_status,
                final_amount=breakdown["final_amount"],
            )
        },
    )
    return {
        "id": booking_id,
        "public_id": public_id,
        "status": initial_status,
        "unit_id": unit["id"],
        "host_id": unit["host_id"],
        "guest_id": guest_id,
        "start_date": start,
        "end_date": end,
        "amount_breakdown": breakdown,
        "currency": snapshot.get("currency", "INR"),
    }


def confirm(
    booking_id: str,
    *,
    actor: str,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Host (or admin) accepts a pending booking.

    Raises:
        BookingNotFoundError: Unknown booking.
        ActorNotAllowedError: Actor is not host or admin.
        InvalidTransitionError: Booking is not pending.
    """
    if actor not in ("host", "admin"):
        raise ActorNotAllowedError("only the host or an admin can confirm")

    with txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id, for_update=True)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        if booking["status"] != STATUS_PENDING:
            raise InvalidTransitionError(
                f"Booking {booking_id} is '{booking['status']}', expected 'pending'"
            )

        bookings_repository.transition_status(
            cur,
            booking_id=booking_id,
            from_statuses=(STATUS_PENDING,),
            to_status=STATUS_CONFIRMED,
        )

    notify(
        BOOKING_CONFIRMED,
        aggregate_type="booking",
        aggregate_id=booking_id,
        payload={"public_id": booking["public_id"], "guest_id": booking["guest_id"]},
        correlation_id=correlation_id,
    )
    return {"status": STATUS_CONFIRMED, "booking_id": booking_id}


def _check_cancellable(booking: dict[str, Any], today: date) -> None:
    if booking["status"] == STATUS_CANCELLED:
        raise BookingNotCancellableError(f"Booking {booking['id']} is already cancelled")
    if booking["status"] not in (STATUS_PENDING, STATUS_CONFIRMED):
        raise InvalidTransitionError(
            f"Booking {booking['id']} is '{booking['status']}' and cannot be cancelled"
        )
    if booking["start_date"] <= today:
        raise BookingNotCancellableError(f"Booking {booking['id']} has already started")


def cancellation_preview(
    booking_id: str,
    *,
    actor: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Refund and penalty a cancellation would produce right now. Read-only.

    Raises:
        BookingNotFoundError: Unknown booking.
        BookingNotCancellableError / InvalidTransitionError: Not cancellable.
    """
    now = now or utc_now()
    with txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id)
    if booking is None:
        raise BookingNotFoundError(f"Booking {booking_id} not found")

    _check_cancellable(booking, now.date())
    terms = compute_cancellation_terms(
        final_amount=booking["final_amount"],
        start=booking["start_date"],
        now=now,
        actor=actor,
    )
    return {
        "booking_id": booking_id,
        "final_amount": booking["final_amount"],
        "days_before_start": terms.days_before_start,
        "penalty_percent": terms.penalty_percent,
        "penalty_amount": terms.penalty_amount,
        "refund_amount": terms.refund_amount,
    }


def cancel(
    booking_id: str,
    *,
    actor: str,
    reason: str,
    now: datetime | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Cancel a pending or confirmed booking before its stay starts.

    In one transaction:
    1. Lock the booking
    2. Reject if already cancelled, completed, or started
    3. Work out refund and penalty for the acting party
    4. Reverse the ledger credit and refund the guest
    5. Release the booked nights
    6. Record the cancellation

    Args:
        booking_id: Booking UUID.
        actor: guest, host or admin.
        reason: Free-text reason, required.
        now: Current time, for tests.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        {"status": "cancelled", "booking_id", "refund_amount", "penalty_amount",
         "nights_released"}

    Raises:
        ValueError: Empty reason.
        BookingNotFoundError: Unknown booking.
        BookingNotCancellableError: Already cancelled or already started.
        InvalidTransitionError: Completed booking.
    """
    if not reason or not reason.strip():
        raise ValueError("cancellation reason is required")

    now = now or utc_now()

    with txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id, for_update=True)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")

        _check_cancellable(booking, now.date())

        terms = compute_cancellation_terms(
            final_amount=booking["final_amount"],
            start=booking["start_date"],
            now=now,
            actor=actor,
        )

        reversal = ledger.reverse_for_cancellation(
            cur,
            booking_id=booking_id,
            booking_type=ledger.BOOKING_TYPE_UNIT,
            guest_id=booking["guest_id"],
            refund_amount=terms.refund_amount,
            penalty_amount=terms.penalty_amount,
            currency=booking["currency"],
        )
        refund_amount = reversal["refund_amount"]
        penalty_amount = reversal["penalty_amount"]

        released = calendar.release(cur, booking_id=booking_id)

        bookings_repository.record_cancellation(
            cur,
            booking_id=booking_id,
            cancelled_by=actor,
            reason=reason.strip(),
            refund_amount=refund_amount,
            penalty_amount=penalty_amount,
            penalty_percent=terms.penalty_percent if reversal["reversed"] else 0,
            days_before=terms.days_before_start,
        )

    logger.info(
        "booking cancelled",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                cancelled_by=actor,
                refund_amount=refund_amount,
                penalty_amount=penalty_amount,
                nights_released=released,
                correlationId=correlation_id,
            )
        },
    )
    notify(
        BOOKING_CANCELLED,
        aggregate_type="booking",
        aggregate_id=booking_id,
        payload={
            "public_id": booking["public_id"],
            "cancelled_by": actor,
            "refund_amount": refund_amount,
        },
        correlation_id=correlation_id,
    )
    return {
        "status": STATUS_CANCELLED,
        "booking_id": booking_id,
        "refund_amount": refund_amount,
        "penalty_amount": penalty_amount,
        "nights_released": released,
    }


def complete_due_bookings(today: date | None = None) -> list[str]:
    """Move confirmed bookings whose stay has ended to completed.

    Pending and cancelled bookings are never touched.

    Returns:
        Ids of the bookings completed by this sweep.
    """
    today = today or utc_today()
    with txn() as cur:
        completed = bookings_repository.complete_ended_bookings(cur, today=today)

    logger.info(
        "completed due bookings",
        extra={"extra_fields": safe_log_context(count=len(completed), today=today.isoformat())},
    )
    return completed


def create_manual(
    *,
    unit_id: str,
    guest_id: str,
    start: date,
    end: date,
    extras: list[dict[str, Any]] | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Host or admin books a unit directly, without a gateway payment.

    The booking is priced from the current calendar like a quote, starts
    confirmed and has no payment reference, so it carries no ledger credit.

    Raises:
        UnitNotFoundError: Unknown unit.
        CalendarConflictError: Nights not available.
        QuoteValidationError: Invalid extras or start in the past.
    """
    with txn() as cur:
        unit = units_repository.get_unit(cur, unit_id)
        if unit is None:
            raise UnitNotFoundError(f"Unit {unit_id} not found")

        quoted = build_quote(
            cur,
            unit=unit,
            start=start,
            end=end,
            extras=extras,
            settings=load_platform_settings(cur),
            today=utc_today(),
        )
        booking = create(
            cur,
            guest_id=guest_id,
            unit=unit,
            snapshot=quoted["snapshot"],
            payment_ref=None,
            initial_status=STATUS_CONFIRMED,
        )

    notify(
        BOOKING_CREATED,
        aggregate_type="booking",
        aggregate_id=booking["id"],
        payload={"public_id": booking["public_id"], "source": "manual"},
        correlation_id=correlation_id,
    )
    return booking
