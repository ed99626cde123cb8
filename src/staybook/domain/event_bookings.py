"""Event ticket pricing and settlement.

Event bookings are created confirmed when their payment settles. Seats are
taken with a capacity-guarded UPDATE, so two settlements racing for the last
seats cannot oversell the event.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.domain import ledger
from staybook.domain.bookings import format_public_booking_id
from staybook.domain.pricing import percent_of
from staybook.infra.repositories import bookings_repository, events_repository
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)


class EventNotFoundError(Exception):
    """Raised when the event does not exist."""

    pass


class EventFullError(Exception):
    """Raised when the event has fewer free seats than requested."""

    pass


def price_tickets(
    event: dict[str, Any],
    *,
    attendees: int,
    fee_percent: Decimal,
) -> dict[str, int]:
    """Ticket amounts: base = price x attendees, tax = fee percent of base.

    Raises:
        ValueError: If attendees is not positive.
    """
    if attendees <= 0:
        raise ValueError("attendees must be positive")

    before_tax = int(event["price_per_attendee"]) * attendees
    tax = percent_of(before_tax, fee_percent)
    return {"before_tax": before_tax, "tax": tax, "final_amount": before_tax + tax}


def settle_event_booking(cur: PgCursor, record: dict[str, Any]) -> dict[str, Any]:
    """Turn a paid event settlement record into a confirmed event booking.

    Runs inside the settlement transaction.

    Returns:
        {"booking_id", "public_id", "attendees"}

    Raises:
        EventNotFoundError: The event no longer exists.
        EventFullError: Not enough seats left.
    """
    event = events_repository.get_event(cur, record["subject_id"])
    if event is None:
        raise EventNotFoundError(f"Event {record['subject_id']} not found")

    metadata = record["metadata"]
    attendees = int(metadata["attendees"])
    before_tax = int(metadata["before_tax"])
    tax = int(metadata["tax"])

    if not events_repository.reserve_seats(cur, event_id=event["id"], attendees=attendees):
        raise EventFullError(f"Event {event['id']} has fewer than {attendees} seats left")

    public_id = format_public_booking_id(bookings_repository.next_public_number(cur))
    booking_id = events_repository.insert_event_booking(
        cur,
        public_id=public_id,
        event_id=event["id"],
        guest_id=record["user_id"],
        organizer_id=event["organizer_id"],
        attendees=attendees,
        before_tax=before_tax,
        tax=tax,
        final_amount=record["amount"],
        payment_ref=record["id"],
    )

    ledger.credit_for_booking(
        cur,
        booking_id=booking_id,
        booking_type=ledger.BOOKING_TYPE_EVENT,
        host_id=event["organizer_id"],
        guest_id=record["user_id"],
        final_amount=record["amount"],
        tax=tax,
        currency=record["currency"],
    )

    logger.info(
        "event booking settled",
        extra={
            "extra_fields": safe_log_context(
                booking_id=booking_id,
                event_id=event["id"],
                attendees=attendees,
            )
        },
    )
    return {"booking_id": booking_id, "public_id": public_id, "attendees": attendees}
