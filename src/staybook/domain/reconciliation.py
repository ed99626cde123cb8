"""Reconciliation sweep - repair state that no single operation could.

- Nights still marked booked by a cancelled booking are released.
- Paid settlement records that never produced a booking (and were not
  already flagged) are flagged for refund once.

Safe to run any number of times.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from staybook.domain.settlement import flag_for_refund
from staybook.infra.db import txn
from staybook.infra.repositories import calendar_repository, settlements_repository
from staybook.infra.time import utc_now
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Paid records younger than this may still be settling.
DEFAULT_GRACE = timedelta(minutes=30)

ERROR_ORPHANED_PAYMENT = "orphaned_payment"


def reconcile(
    *,
    now: datetime | None = None,
    grace: timedelta = DEFAULT_GRACE,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Run the sweep.

    Returns:
        {"released_bookings": n, "flagged_records": m}
    """
    now = now or utc_now()

    with txn() as cur:
        released = calendar_repository.release_orphaned_nights(cur)

        flagged = 0
        for record in settlements_repository.list_unsettled_paid_records(
            cur, paid_before=now - grace
        ):
            if flag_for_refund(
                cur, record, error=ERROR_ORPHANED_PAYMENT, correlation_id=correlation_id
            ):
                flagged += 1

    log = logger.warning if (released or flagged) else logger.info
    log(
        "reconciliation finished",
        extra={
            "extra_fields": safe_log_context(
                released_bookings=len(released),
                flagged_records=flagged,
                correlationId=correlation_id,
            )
        },
    )
    return {"released_bookings": len(released), "flagged_records": flagged}
