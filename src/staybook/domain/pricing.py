"""Pricing calculator - pure functions, no I/O.

Nightly prices are computed only here. The calendar stores the result; quotes
and bookings read stored nights rather than recomputing.

Amounts are integers in major currency units. The platform fee is applied
multiplicatively and rounding happens once, after the fee is added:

    price_with_fee = round_half_up(base + base * fee / 100)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

# Monday=0 ... Sunday=6; Friday and Saturday nights are weekend nights
DEFAULT_WEEKEND_DAYS = frozenset({4, 5})

PRICE_SOURCE_BASE = "base"
PRICE_SOURCE_WEEKEND = "weekend"
PRICE_SOURCE_MANUAL = "manual"
REPRICEABLE_SOURCES = (PRICE_SOURCE_BASE, PRICE_SOURCE_WEEKEND)

EXTRA_FEATURE_TYPES = ("club_house", "car", "car_with_driver", "maid_service")

WEEKLY_MIN_NIGHTS = 7
MONTHLY_MIN_NIGHTS = 28


class ExtraFeatureUnavailableError(Exception):
    """Raised when a requested extra is unknown or not offered by the unit."""

    pass


def round_half_up(value: Decimal | int) -> int:
    """Round to a whole amount, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_fee(price: int, fee_percent: Decimal | int) -> int:
    """Add the platform fee percentage to a pre-fee price."""
    base = Decimal(price)
    return round_half_up(base + base * Decimal(fee_percent) / Decimal(100))


def percent_of(amount: int, percent: Decimal | int) -> int:
    return round_half_up(Decimal(amount) * Decimal(percent) / Decimal(100))


@dataclass(frozen=True)
class UnitPricingRules:
    """Host-configured nightly pricing for one unit."""

    base_price: int
    weekend_price_enabled: bool = False
    weekend_price: int | None = None
    weekend_days: frozenset[int] = DEFAULT_WEEKEND_DAYS

    @classmethod
    def from_unit(cls, unit: dict[str, Any]) -> UnitPricingRules:
        weekend_days = unit.get("weekend_days")
        return cls(
            base_price=int(unit["base_price"]),
            weekend_price_enabled=bool(unit.get("weekend_price_enabled")),
            weekend_price=(
                int(unit["weekend_price"]) if unit.get("weekend_price") is not None else None
            ),
            weekend_days=(
                frozenset(int(d) for d in weekend_days)
                if weekend_days
                else DEFAULT_WEEKEND_DAYS
            ),
        )


@dataclass(frozen=True)
class NightPrice:
    """Priced night as stored in the calendar."""

    night: date
    price_before_fee: int
    price_with_fee: int
    is_weekend: bool
    price_source: str


def is_weekend_night(night: date, weekend_days: frozenset[int] = DEFAULT_WEEKEND_DAYS) -> bool:
    return night.weekday() in weekend_days


def compute_night_price(
    night: date,
    rules: UnitPricingRules,
    fee_percent: Decimal | int,
) -> NightPrice:
    """Price one night for a unit.

    Weekend nights use the weekend override when the host enabled it (falling
    back to the base price if no override amount is set); every other night
    uses the base price.

    Args:
        night: Calendar date of the night.
        rules: Unit pricing rules.
        fee_percent: Platform fee percentage from the settings snapshot.

    Returns:
        NightPrice with pre-fee and fee-inclusive amounts.
    """
    weekend = is_weekend_night(night, rules.weekend_days)

    if weekend and rules.weekend_price_enabled:
        price = rules.weekend_price if rules.weekend_price is not None else rules.base_price
        source = PRICE_SOURCE_WEEKEND
    else:
        price = rules.base_price
        source = PRICE_SOURCE_BASE

    return NightPrice(
        night=night,
        price_before_fee=price,
        price_with_fee=apply_fee(price, fee_percent),
        is_weekend=weekend,
        price_source=source,
    )


# --- Discounts -------------------------------------------------------------


@dataclass(frozen=True)
class DiscountRule:
    percent: Decimal
    enabled: bool
    before_days: int | None = None


def _rule(raw: dict[str, Any] | None, percent: str, enabled: bool) -> DiscountRule:
    raw = raw or {}
    before_days = raw.get("before_days")
    return DiscountRule(
        percent=Decimal(str(raw.get("percent", percent))),
        enabled=bool(raw.get("enabled", enabled)),
        before_days=int(before_days) if before_days is not None else None,
    )


@dataclass(frozen=True)
class DiscountRules:
    """Unit discount configuration; defaults mirror new-unit defaults."""

    weekly: DiscountRule = field(default_factory=lambda: DiscountRule(Decimal(14), True))
    monthly: DiscountRule = field(default_factory=lambda: DiscountRule(Decimal(22), True))
    last_minute: DiscountRule = field(default_factory=lambda: DiscountRule(Decimal(0), False, 0))
    new_listing: DiscountRule = field(default_factory=lambda: DiscountRule(Decimal(20), True))

    @classmethod
    def from_json(cls, raw: dict[str, Any] | None) -> DiscountRules:
        raw = raw or {}
        return cls(
            weekly=_rule(raw.get("weekly"), "14", True),
            monthly=_rule(raw.get("monthly"), "22", True),
            last_minute=_rule(raw.get("last_minute"), "0", False),
            new_listing=_rule(raw.get("new_listing"), "20", True),
        )


def compute_discounts(
    *,
    with_tax: int,
    start: date,
    nights: int,
    today: date,
    rules: DiscountRules,
    is_new_listing: bool,
) -> list[dict[str, Any]]:
    """Discount lines applicable to a stay.

    The monthly discount replaces the weekly one; last-minute and new-listing
    discounts stack on top. Every line is a percentage of ``with_tax``.

    Returns:
        List of {"kind", "percent", "amount"} dicts with amount > 0.
    """
    lines: list[tuple[str, Decimal]] = []

    if nights >= MONTHLY_MIN_NIGHTS and rules.monthly.enabled:
        lines.append(("monthly", rules.monthly.percent))
    elif nights >= WEEKLY_MIN_NIGHTS and rules.weekly.enabled:
        lines.append(("weekly", rules.weekly.percent))

    last_minute = rules.last_minute
    if (
        last_minute.enabled
        and last_minute.before_days is not None
        and 0 <= (start - today).days <= last_minute.before_days
    ):
        lines.append(("last_minute", last_minute.percent))

    if is_new_listing and rules.new_listing.enabled:
        lines.append(("new_listing", rules.new_listing.percent))

    result = []
    for kind, percent in lines:
        amount = percent_of(with_tax, percent)
        if amount > 0:
            result.append({"kind": kind, "percent": str(percent), "amount": amount})
    return result


# --- Extra features --------------------------------------------------------


def compute_extras(
    requested: list[dict[str, Any]],
    offered: dict[str, Any] | None,
    nights: int,
) -> list[dict[str, Any]]:
    """Price requested extra features at their daily rate.

    Args:
        requested: [{"feature_type": str, "days": int | None}, ...].
        offered: Unit extra_features JSON: {type: {"available", "daily_rate"}}.
        nights: Stay length, the default number of days for an extra.

    Returns:
        [{"feature_type", "days", "daily_rate", "total_amount"}, ...]

    Raises:
        ExtraFeatureUnavailableError: Unknown type, not offered, or bad days.
    """
    offered = offered or {}
    lines = []
    seen: set[str] = set()

    for item in requested:
        feature_type = item.get("feature_type")
        if feature_type not in EXTRA_FEATURE_TYPES or feature_type in seen:
            raise ExtraFeatureUnavailableError(f"Invalid extra feature: {feature_type}")
        seen.add(feature_type)

        feature = offered.get(feature_type) or {}
        if not feature.get("available"):
            raise ExtraFeatureUnavailableError(f"Extra feature not offered: {feature_type}")

        days = item.get("days") or nights
        if days < 1 or days > nights:
            raise ExtraFeatureUnavailableError(
                f"Extra feature days must be between 1 and {nights}"
            )

        daily_rate = int(feature.get("daily_rate") or 0)
        lines.append(
            {
                "feature_type": feature_type,
                "days": days,
                "daily_rate": daily_rate,
                "total_amount": daily_rate * days,
            }
        )

    return lines
