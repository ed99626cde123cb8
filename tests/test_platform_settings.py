"""Tests for the versioned platform settings snapshot."""

from decimal import Decimal
from unittest.mock import MagicMock

from staybook.infra.platform_settings import (
    PlatformSettings,
    default_settings,
    load_platform_settings,
    update_fee_percents,
)


class TestLoad:
    def test_defaults_when_no_row(self, monkeypatch):
        for name in ("DEFAULT_UNIT_FEE_PERCENT", "DEFAULT_EVENT_FEE_PERCENT", "DEFAULT_CURRENCY"):
            monkeypatch.delenv(name, raising=False)
        cur = MagicMock()
        cur.fetchone.return_value = None

        settings = load_platform_settings(cur)

        assert settings == PlatformSettings(
            unit_fee_percent=Decimal("10"),
            event_fee_percent=Decimal("15"),
            currency="INR",
            version=0,
            unit_fee_version=0,
        )

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_UNIT_FEE_PERCENT", "12.5")
        assert default_settings().unit_fee_percent == Decimal("12.5")

    def test_row(self):
        cur = MagicMock()
        cur.fetchone.return_value = (Decimal("8"), Decimal("20"), "INR", 4, 2)

        settings = load_platform_settings(cur)

        assert settings.unit_fee_percent == Decimal("8")
        assert settings.event_fee_percent == Decimal("20")
        assert settings.version == 4
        assert settings.unit_fee_version == 2


class TestUpdate:
    def test_bumps_version_and_keeps_unchanged_fee(self):
        cur = MagicMock()
        cur.fetchone.side_effect = [(Decimal("8"), Decimal("20"), "INR", 4, 4), (5, 5)]

        settings = update_fee_percents(cur, unit_fee_percent=Decimal("9"))

        assert settings.version == 5
        assert settings.unit_fee_version == 5
        assert settings.unit_fee_percent == Decimal("9")
        assert settings.event_fee_percent == Decimal("20")
        update_params = cur.execute.call_args_list[2][0][1]
        assert update_params == (Decimal("9"), Decimal("20"), True)

    def test_locks_row_before_merging(self):
        cur = MagicMock()
        cur.fetchone.side_effect = [(Decimal("8"), Decimal("20"), "INR", 4, 4), (5, 4)]

        update_fee_percents(cur, event_fee_percent=Decimal("18"))

        statements = [c[0][0] for c in cur.execute.call_args_list]
        assert "ON CONFLICT (id) DO NOTHING" in statements[0]
        assert "FOR UPDATE" in statements[1]
        assert statements[2].lstrip().startswith("UPDATE platform_settings")

    def test_event_fee_change_keeps_unit_fee_version(self):
        cur = MagicMock()
        cur.fetchone.side_effect = [(Decimal("8"), Decimal("20"), "INR", 4, 4), (5, 4)]

        settings = update_fee_percents(cur, event_fee_percent=Decimal("18"))

        assert settings.version == 5
        assert settings.unit_fee_version == 4
        assert cur.execute.call_args_list[2][0][1] == (Decimal("8"), Decimal("18"), False)
