"""Cancellation refund policy - pure functions, no I/O.

Guest cancellations pay a penalty that grows as the stay approaches:

    days before start   penalty
    <= 1                80%
    <= 7                50%
    <= 15               25%
    <= 30               10%
    > 30                 0%

Host and admin cancellations always refund the full amount. Setting
CANCELLATION_POLICY=full_refund turns guest penalties off.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from staybook.domain.pricing import percent_of

POLICY_TIERED = "tiered"
POLICY_FULL_REFUND = "full_refund"

# (max days before start, penalty percent), checked in order
GUEST_PENALTY_TIERS: tuple[tuple[int, int], ...] = (
    (1, 80),
    (7, 50),
    (15, 25),
    (30, 10),
)

CANCEL_ACTORS = ("guest", "host", "admin")


@dataclass(frozen=True)
class CancellationTerms:
    days_before_start: int
    penalty_percent: int
    penalty_amount: int
    refund_amount: int


def _get_policy() -> str:
    policy = os.environ.get("CANCELLATION_POLICY", POLICY_TIERED)
    if policy not in (POLICY_TIERED, POLICY_FULL_REFUND):
        raise RuntimeError(f"Unknown CANCELLATION_POLICY: {policy}")
    return policy


def days_before_start(start: date, now: datetime) -> int:
    """Whole days from now until the start night begins (UTC), rounded up."""
    start_at = datetime.combine(start, time.min, tzinfo=timezone.utc)
    return math.ceil((start_at - now).total_seconds() / 86400)


def guest_penalty_percent(days_before: int) -> int:
    for max_days, percent in GUEST_PENALTY_TIERS:
        if days_before <= max_days:
            return percent
    return 0


def compute_cancellation_terms(
    *,
    final_amount: int,
    start: date,
    now: datetime,
    actor: str,
    policy: str | None = None,
) -> CancellationTerms:
    """Work out refund and penalty for cancelling a booking now.

    Args:
        final_amount: What the guest paid.
        start: First night of the stay.
        now: Current time (timezone-aware).
        actor: Who cancels: guest, host or admin.
        policy: Override for CANCELLATION_POLICY.

    Returns:
        CancellationTerms with refund_amount + penalty_amount == final_amount.
    """
    if actor not in CANCEL_ACTORS:
        raise ValueError(f"Invalid cancellation actor: {actor}")

    policy = policy or _get_policy()
    days_before = days_before_start(start, now)

    if actor == "guest" and policy == POLICY_TIERED:
        penalty_percent = guest_penalty_percent(days_before)
    else:
        penalty_percent = 0

    penalty_amount = percent_of(final_amount, penalty_percent)
    return CancellationTerms(
        days_before_start=days_before,
        penalty_percent=penalty_percent,
        penalty_amount=penalty_amount,
        refund_amount=final_amount - penalty_amount,
    )
