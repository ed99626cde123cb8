"""Tests for the pricing calculator."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from staybook.domain.pricing import (
    DiscountRules,
    ExtraFeatureUnavailableError,
    UnitPricingRules,
    apply_fee,
    compute_discounts,
    compute_extras,
    compute_night_price,
    round_half_up,
)

# 2026-10-01 is a Thursday
THURSDAY = date(2026, 10, 1)
FRIDAY = date(2026, 10, 2)
SATURDAY = date(2026, 10, 3)
MONDAY = date(2026, 10, 5)


class TestApplyFee:
    def test_ten_percent_on_thousand(self):
        assert apply_fee(1000, 10) == 1100

    def test_rounds_once_after_fee(self):
        # 999 * 1.1 = 1098.9
        assert apply_fee(999, 10) == 1099

    def test_half_rounds_up(self):
        assert apply_fee(5, 10) == 6
        assert round_half_up(Decimal("2.5")) == 3

    def test_decimal_fee(self):
        assert apply_fee(1000, Decimal("12.5")) == 1125

    def test_zero_fee(self):
        assert apply_fee(1234, 0) == 1234


class TestComputeNightPrice:
    def test_weekday_uses_base_price(self):
        rules = UnitPricingRules(base_price=1000, weekend_price_enabled=True, weekend_price=1500)

        night = compute_night_price(MONDAY, rules, 10)

        assert night.price_before_fee == 1000
        assert night.price_with_fee == 1100
        assert night.is_weekend is False
        assert night.price_source == "base"

    def test_weekend_override(self):
        rules = UnitPricingRules(base_price=1000, weekend_price_enabled=True, weekend_price=1500)

        night = compute_night_price(SATURDAY, rules, 10)

        assert night.price_before_fee == 1500
        assert night.price_with_fee == 1650
        assert night.is_weekend is True
        assert night.price_source == "weekend"

    def test_weekend_without_override_uses_base(self):
        rules = UnitPricingRules(base_price=1000)

        night = compute_night_price(FRIDAY, rules, 10)

        assert night.is_weekend is True
        assert night.price_before_fee == 1000
        assert night.price_source == "base"

    def test_weekend_enabled_without_amount_falls_back(self):
        rules = UnitPricingRules(base_price=800, weekend_price_enabled=True)

        night = compute_night_price(SATURDAY, rules, 0)

        assert night.price_before_fee == 800
        assert night.price_source == "weekend"

    def test_custom_weekend_days(self):
        rules = UnitPricingRules(
            base_price=1000,
            weekend_price_enabled=True,
            weekend_price=2000,
            weekend_days=frozenset({3}),
        )

        assert compute_night_price(THURSDAY, rules, 0).price_before_fee == 2000
        assert compute_night_price(SATURDAY, rules, 0).price_before_fee == 1000

    def test_rules_from_unit_row(self):
        rules = UnitPricingRules.from_unit(
            {
                "base_price": 900,
                "weekend_price_enabled": True,
                "weekend_price": 1200,
                "weekend_days": [5, 6],
            }
        )

        assert rules.base_price == 900
        assert rules.weekend_price == 1200
        assert rules.weekend_days == frozenset({5, 6})

    def test_rules_from_unit_defaults(self):
        rules = UnitPricingRules.from_unit({"base_price": 900})

        assert rules.weekend_price_enabled is False
        assert rules.weekend_price is None
        assert rules.weekend_days == frozenset({4, 5})


class TestComputeDiscounts:
    def _discounts(self, nights, *, start=date(2026, 12, 1), today=date(2026, 10, 1), rules=None, new=False):
        return compute_discounts(
            with_tax=10000,
            start=start,
            nights=nights,
            today=today,
            rules=rules or DiscountRules(),
            is_new_listing=new,
        )

    def test_short_stay_no_discount(self):
        assert self._discounts(3) == []

    def test_weekly_discount(self):
        lines = self._discounts(7)
        assert lines == [{"kind": "weekly", "percent": "14", "amount": 1400}]

    def test_monthly_replaces_weekly(self):
        lines = self._discounts(28)
        assert [line["kind"] for line in lines] == ["monthly"]
        assert lines[0]["amount"] == 2200

    def test_new_listing_stacks(self):
        lines = self._discounts(7, new=True)
        assert [line["kind"] for line in lines] == ["weekly", "new_listing"]
        assert sum(line["amount"] for line in lines) == 3400

    def test_last_minute_inside_window(self):
        rules = DiscountRules.from_json(
            {"last_minute": {"percent": 5, "enabled": True, "before_days": 3}}
        )
        lines = self._discounts(2, start=date(2026, 10, 3), today=date(2026, 10, 1), rules=rules)
        assert lines == [{"kind": "last_minute", "percent": "5", "amount": 500}]

    def test_last_minute_outside_window(self):
        rules = DiscountRules.from_json(
            {"last_minute": {"percent": 5, "enabled": True, "before_days": 3}}
        )
        assert self._discounts(2, start=date(2026, 10, 10), today=date(2026, 10, 1), rules=rules) == []

    def test_disabled_weekly(self):
        rules = DiscountRules.from_json({"weekly": {"percent": 14, "enabled": False}})
        assert self._discounts(7, rules=rules) == []


class TestComputeExtras:
    OFFERED = {
        "car": {"available": True, "daily_rate": 500},
        "maid_service": {"available": False, "daily_rate": 300},
    }

    def test_defaults_to_stay_length(self):
        lines = compute_extras([{"feature_type": "car"}], self.OFFERED, 3)
        assert lines == [
            {"feature_type": "car", "days": 3, "daily_rate": 500, "total_amount": 1500}
        ]

    def test_explicit_days(self):
        lines = compute_extras([{"feature_type": "car", "days": 1}], self.OFFERED, 3)
        assert lines[0]["total_amount"] == 500

    def test_not_offered(self):
        with pytest.raises(ExtraFeatureUnavailableError):
            compute_extras([{"feature_type": "maid_service"}], self.OFFERED, 3)

    def test_unknown_type(self):
        with pytest.raises(ExtraFeatureUnavailableError):
            compute_extras([{"feature_type": "helicopter"}], self.OFFERED, 3)

    def test_days_beyond_stay(self):
        with pytest.raises(ExtraFeatureUnavailableError):
            compute_extras([{"feature_type": "car", "days": 4}], self.OFFERED, 3)

    def test_duplicate_type(self):
        with pytest.raises(ExtraFeatureUnavailableError):
            compute_extras(
                [{"feature_type": "car"}, {"feature_type": "car"}], self.OFFERED, 3
            )
