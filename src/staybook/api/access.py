"""Who may act on what.

Provides:
- booking_actor(): guest / host / admin role of a user on a booking
- require_unit_host(): unit host (or admin) check
- require_admin(): FastAPI dependency for admin-only routes
- UUID_PATTERN: path parameter pattern for row ids
"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException

from staybook.api.auth import CurrentUser, get_current_user
from staybook.infra.db import txn
from staybook.infra.repositories import bookings_repository, units_repository

# Malformed ids are rejected with 422 before they reach a uuid column.
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"


def _get_booking(booking_id: str) -> dict[str, Any] | None:
    with txn() as cur:
        return bookings_repository.get_booking(cur, booking_id)


def _get_unit(unit_id: str) -> dict[str, Any] | None:
    with txn() as cur:
        return units_repository.get_unit(cur, unit_id)


def actor_for(user: CurrentUser, booking: dict[str, Any]) -> str | None:
    """Role the user plays on the booking, or None for strangers.

    Admin wins over host, host over guest.
    """
    if user.is_admin:
        return "admin"
    if booking["host_id"] == user.id:
        return "host"
    if booking["guest_id"] == user.id:
        return "guest"
    return None


def booking_actor(user: CurrentUser, booking_id: str) -> str:
    """Resolve the acting role on a booking.

    Raises:
        HTTPException: 404 unknown booking, 403 user unrelated to it.
    """
    booking = _get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    actor = actor_for(user, booking)
    if actor is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    return actor


def require_unit_host(user: CurrentUser, unit_id: str) -> dict[str, Any]:
    """Return the unit if the user hosts it or is an admin.

    Raises:
        HTTPException: 404 unknown unit, 403 not the host.
    """
    unit = _get_unit(unit_id)
    if unit is None:
        raise HTTPException(status_code=404, detail="Unit not found")
    if not user.is_admin and unit["host_id"] != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return unit


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user
