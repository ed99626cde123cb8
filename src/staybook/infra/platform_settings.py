"""Platform-wide settings snapshot.

Platform fee percentages live in a single ``platform_settings`` row that
carries a version number. Request handlers and tasks load one immutable
``PlatformSettings`` snapshot and pass the values they need into the pricing
functions explicitly, so a concurrent settings change never alters a
calculation that is already in flight.

Every update bumps ``version``. ``unit_fee_version`` only moves when the unit
fee changes; calendar reprice work is tagged with it, so an event-fee change
does not supersede reprice work that is still queued.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor


@dataclass(frozen=True)
class PlatformSettings:
    """Immutable view of platform settings at one version."""

    unit_fee_percent: Decimal
    event_fee_percent: Decimal
    currency: str = "INR"
    version: int = 0
    unit_fee_version: int = 0


def _env_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.environ.get(name, default))


def default_settings() -> PlatformSettings:
    """Settings used when the platform_settings row has not been created yet."""
    return PlatformSettings(
        unit_fee_percent=_env_decimal("DEFAULT_UNIT_FEE_PERCENT", "10"),
        event_fee_percent=_env_decimal("DEFAULT_EVENT_FEE_PERCENT", "15"),
        currency=os.environ.get("DEFAULT_CURRENCY", "INR"),
        version=0,
        unit_fee_version=0,
    )


def load_platform_settings(cur: PgCursor, *, for_update: bool = False) -> PlatformSettings:
    """Load the current settings snapshot.

    Falls back to environment defaults (version 0) when no row exists.

    Args:
        cur: Database cursor.
        for_update: Lock the settings row until the transaction ends.
    """
    sql = """
        SELECT unit_fee_percent, event_fee_percent, currency, version, unit_fee_version
        FROM platform_settings
        WHERE id = 1
    """
    if for_update:
        sql += " FOR UPDATE"
    cur.execute(sql)
    row = cur.fetchone()
    if row is None:
        return default_settings()

    return PlatformSettings(
        unit_fee_percent=Decimal(row[0]),
        event_fee_percent=Decimal(row[1]),
        currency=row[2],
        version=int(row[3]),
        unit_fee_version=int(row[4]),
    )


def update_fee_percents(
    cur: PgCursor,
    *,
    unit_fee_percent: Decimal | None = None,
    event_fee_percent: Decimal | None = None,
) -> PlatformSettings:
    """Change fee percentages and bump the version.

    The row is created from the environment defaults if missing, then locked
    before the new values are merged in, so two concurrent updates of
    different fees both survive.

    Args:
        cur: Database cursor (within transaction).
        unit_fee_percent: New fee for unit bookings, or None to keep.
        event_fee_percent: New fee for event bookings, or None to keep.

    Returns:
        The new settings snapshot.
    """
    defaults = default_settings()
    cur.execute(
        """
        INSERT INTO platform_settings
            (id, unit_fee_percent, event_fee_percent, currency, version, unit_fee_version)
        VALUES (1, %s, %s, %s, 0, 0)
        ON CONFLICT (id) DO NOTHING
        """,
        (defaults.unit_fee_percent, defaults.event_fee_percent, defaults.currency),
    )

    current = load_platform_settings(cur, for_update=True)
    unit_fee = unit_fee_percent if unit_fee_percent is not None else current.unit_fee_percent
    event_fee = event_fee_percent if event_fee_percent is not None else current.event_fee_percent

    # SET expressions see the pre-update row, so version + 1 is the new version.
    cur.execute(
        """
        UPDATE platform_settings
        SET unit_fee_percent = %s,
            event_fee_percent = %s,
            version = version + 1,
            unit_fee_version = CASE WHEN %s THEN version + 1 ELSE unit_fee_version END,
            updated_at = now()
        WHERE id = 1
        RETURNING version, unit_fee_version
        """,
        (unit_fee, event_fee, unit_fee_percent is not None),
    )
    version, unit_fee_version = cur.fetchone()

    return PlatformSettings(
        unit_fee_percent=Decimal(unit_fee),
        event_fee_percent=Decimal(event_fee),
        currency=current.currency,
        version=int(version),
        unit_fee_version=int(unit_fee_version),
    )
