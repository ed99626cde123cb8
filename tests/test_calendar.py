"""Tests for the calendar store with the repository mocked out."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from staybook.domain import calendar
from staybook.domain.calendar import CalendarConflictError, InvalidDateRangeError
from staybook.domain.pricing import UnitPricingRules

REPO = "staybook.domain.calendar.calendar_repository"
START = date(2026, 10, 5)
END = date(2026, 10, 8)


class TestValidateRange:
    def test_length(self):
        assert calendar.validate_range(START, END) == 3

    @pytest.mark.parametrize("end", [START, date(2026, 10, 1)])
    def test_empty_or_reversed(self, end):
        with pytest.raises(InvalidDateRangeError):
            calendar.validate_range(START, end)


class TestForwardWindow:
    def test_default_window(self, monkeypatch):
        monkeypatch.delenv("CALENDAR_WINDOW_DAYS", raising=False)
        assert calendar.forward_window(date(2026, 1, 1)) == (date(2026, 1, 1), date(2027, 1, 1))

    def test_configured_window(self, monkeypatch):
        monkeypatch.setenv("CALENDAR_WINDOW_DAYS", "30")
        assert calendar.forward_window(date(2026, 1, 1))[1] == date(2026, 1, 31)


class TestSeed:
    def test_prices_every_night(self):
        rules = UnitPricingRules(base_price=1000)

        with patch(f"{REPO}.insert_missing_nights", return_value=3) as insert:
            inserted = calendar.seed(
                MagicMock(),
                unit_id="u1",
                rules=rules,
                start=START,
                end=END,
                fee_percent=Decimal("10"),
            )

        assert inserted == 3
        prices = insert.call_args.kwargs["prices"]
        assert [p.night for p in prices] == [date(2026, 10, 5), date(2026, 10, 6), date(2026, 10, 7)]
        assert all(p.price_with_fee == 1100 for p in prices)


class TestReprice:
    def test_only_repriceable_nights(self):
        rules = UnitPricingRules(base_price=2000)

        with patch(f"{REPO}.list_repriceable_nights", return_value=[date(2026, 10, 6)]), patch(
            f"{REPO}.update_night_prices", return_value=1
        ) as update:
            updated = calendar.reprice(
                MagicMock(),
                unit_id="u1",
                rules=rules,
                start=START,
                end=END,
                fee_percent=Decimal("20"),
            )

        assert updated == 1
        (price,) = update.call_args.kwargs["prices"]
        assert price.night == date(2026, 10, 6)
        assert price.price_with_fee == 2400


class TestMarkBooked:
    def test_all_nights_claimed(self):
        with patch(f"{REPO}.claim_nights", return_value=3) as claim, patch(
            f"{REPO}.find_unavailable_nights"
        ) as find:
            calendar.mark_booked(MagicMock(), unit_id="u1", start=START, end=END, booking_id="b1")

        claim.assert_called_once()
        find.assert_not_called()

    def test_partial_claim_raises_with_conflicts(self):
        conflicts = [{"night": date(2026, 10, 6), "status": "booked"}]

        with patch(f"{REPO}.claim_nights", return_value=2), patch(
            f"{REPO}.find_unavailable_nights", return_value=conflicts
        ):
            with pytest.raises(CalendarConflictError) as exc_info:
                calendar.mark_booked(
                    MagicMock(), unit_id="u1", start=START, end=END, booking_id="b1"
                )

        assert exc_info.value.conflicts == conflicts
        assert "1 of 3" in str(exc_info.value)

    def test_empty_range(self):
        with patch(f"{REPO}.claim_nights") as claim:
            with pytest.raises(InvalidDateRangeError):
                calendar.mark_booked(
                    MagicMock(), unit_id="u1", start=END, end=START, booking_id="b1"
                )
        claim.assert_not_called()


class TestManualEdits:
    def test_manual_price_reports_skipped(self):
        nights = [date(2026, 10, 5), date(2026, 10, 6)]

        with patch(f"{REPO}.set_manual_prices", return_value=[date(2026, 10, 5)]):
            result = calendar.set_manual_price(
                MagicMock(),
                unit_id="u1",
                nights=nights,
                price_before_fee=900,
                price_with_fee=990,
            )

        assert result == {"updated": [date(2026, 10, 5)], "skipped": [date(2026, 10, 6)]}

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            calendar.set_manual_price(
                MagicMock(), unit_id="u1", nights=[START], price_before_fee=-1, price_with_fee=0
            )

    def test_block_nights(self):
        with patch(f"{REPO}.set_nights_status", return_value=[START]) as set_status:
            result = calendar.set_availability(
                MagicMock(), unit_id="u1", nights=[START], status="blocked", note="repairs"
            )

        assert result == {"updated": [START], "skipped": []}
        assert set_status.call_args.kwargs["status"] == "blocked"
