"""Units repository - rental units, their pricing rules and host auto-accept lists.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

_UNIT_COLUMNS = """
    id, host_id, name, base_price, weekend_price_enabled, weekend_price,
    weekend_days, discounts, extra_features, is_new_listing
"""


def _row_to_unit(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "host_id": str(row[1]),
        "name": row[2],
        "base_price": row[3],
        "weekend_price_enabled": row[4],
        "weekend_price": row[5],
        "weekend_days": list(row[6]) if row[6] is not None else None,
        "discounts": row[7] or {},
        "extra_features": row[8] or {},
        "is_new_listing": row[9],
    }


def get_unit(cur: PgCursor, unit_id: str) -> dict[str, Any] | None:
    """Get a unit with its pricing rules, or None if not found."""
    cur.execute(f"SELECT {_UNIT_COLUMNS} FROM units WHERE id = %s", (unit_id,))
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_unit(row)


def list_unit_ids(cur: PgCursor) -> list[str]:
    """All unit ids, oldest first."""
    cur.execute("SELECT id FROM units ORDER BY created_at, id")
    return [str(row[0]) for row in cur.fetchall()]


def update_unit_pricing(
    cur: PgCursor,
    *,
    unit_id: str,
    base_price: int,
    weekend_price_enabled: bool,
    weekend_price: int | None,
    weekend_days: list[int] | None = None,
    discounts: dict[str, Any] | None = None,
    extra_features: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Replace a unit's pricing rules.

    ``weekend_days``, ``discounts`` and ``extra_features`` keep their stored
    value when None.

    Returns:
        The updated unit, or None if it does not exist.
    """
    cur.execute(
        f"""
        UPDATE units
        SET base_price = %s,
            weekend_price_enabled = %s,
            weekend_price = %s,
            weekend_days = COALESCE(%s::smallint[], weekend_days),
            discounts = COALESCE(%s::jsonb, discounts),
            extra_features = COALESCE(%s::jsonb, extra_features),
            updated_at = now()
        WHERE id = %s
        RETURNING {_UNIT_COLUMNS}
        """,
        (
            base_price,
            weekend_price_enabled,
            weekend_price,
            weekend_days,
            json.dumps(discounts) if discounts is not None else None,
            json.dumps(extra_features) if extra_features is not None else None,
            unit_id,
        ),
    )
    row = cur.fetchone()
    if row is None:
        return None
    return _row_to_unit(row)


def is_auto_accepted(cur: PgCursor, *, host_id: str, guest_id: str) -> bool:
    """True if the host pre-authorized bookings from this guest."""
    cur.execute(
        "SELECT 1 FROM host_auto_accept WHERE host_id = %s AND guest_id = %s",
        (host_id, guest_id),
    )
    return cur.fetchone() is not None


def add_auto_accept(cur: PgCursor, *, host_id: str, guest_id: str) -> bool:
    """Add a guest to the host's allow-list. Returns False if already present."""
    cur.execute(
        """
        INSERT INTO host_auto_accept (host_id, guest_id)
        VALUES (%s, %s)
        ON CONFLICT DO NOTHING
        """,
        (host_id, guest_id),
    )
    return cur.rowcount == 1


def remove_auto_accept(cur: PgCursor, *, host_id: str, guest_id: str) -> bool:
    """Remove a guest from the host's allow-list. Returns False if absent."""
    cur.execute(
        "DELETE FROM host_auto_accept WHERE host_id = %s AND guest_id = %s",
        (host_id, guest_id),
    )
    return cur.rowcount == 1
