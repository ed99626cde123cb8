"""Tests for time and night-range utilities."""

from datetime import date, timezone

from staybook.infra.time import count_nights, iter_nights, month_bounds, utc_now, utc_today


def test_utc_now_is_aware():
    assert utc_now().tzinfo == timezone.utc


def test_utc_today_is_date():
    assert isinstance(utc_today(), date)


class TestNights:
    def test_half_open_range(self):
        assert list(iter_nights(date(2026, 10, 30), date(2026, 11, 2))) == [
            date(2026, 10, 30),
            date(2026, 10, 31),
            date(2026, 11, 1),
        ]

    def test_empty_range(self):
        assert list(iter_nights(date(2026, 10, 5), date(2026, 10, 5))) == []

    def test_count(self):
        assert count_nights(date(2026, 10, 1), date(2026, 10, 4)) == 3

    def test_count_never_negative(self):
        assert count_nights(date(2026, 10, 4), date(2026, 10, 1)) == 0


class TestMonthBounds:
    def test_mid_year(self):
        assert month_bounds(2026, 2) == (date(2026, 2, 1), date(2026, 3, 1))

    def test_december_rolls_year(self):
        assert month_bounds(2026, 12) == (date(2026, 12, 1), date(2027, 1, 1))
