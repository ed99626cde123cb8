"""Best-effort notifications, written after the business transaction commits.

Notifications go to the outbox in their own transaction. A failure here is
logged and swallowed: bookings and ledger rows are already committed and stay
the source of truth.
"""

from __future__ import annotations

from typing import Any

from staybook.infra.db import txn
from staybook.infra.repositories.outbox_repository import emit_event
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

BOOKING_CREATED = "BOOKING_CREATED"
BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"
EVENT_BOOKING_CREATED = "EVENT_BOOKING_CREATED"
SETTLEMENT_NEEDS_REFUND = "SETTLEMENT_NEEDS_REFUND"


def notify(
    event_type: str,
    *,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> bool:
    """Record a notification event; never raises.

    Returns:
        True if the event was written.
    """
    try:
        with txn() as cur:
            emit_event(
                cur,
                event_type=event_type,
                aggregate_type=aggregate_type,
                aggregate_id=aggregate_id,
                payload=payload,
                correlation_id=correlation_id,
            )
        return True
    except Exception:
        logger.exception(
            "notification failed",
            extra={
                "extra_fields": safe_log_context(
                    event_type=event_type,
                    aggregate_type=aggregate_type,
                    aggregate_id=aggregate_id,
                    correlationId=correlation_id,
                )
            },
        )
        return False
