"""Booking endpoints: manual booking, confirm, cancel, preview, auto-accept."""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field

from staybook.api.access import UUID_PATTERN, actor_for, booking_actor, require_unit_host
from staybook.api.auth import CurrentUser, get_current_user
from staybook.api.routes.quotes import ExtraRequest, conflict_detail
from staybook.domain import bookings
from staybook.domain.calendar import CalendarConflictError, InvalidDateRangeError
from staybook.domain.quote import QuoteValidationError
from staybook.infra.db import txn
from staybook.infra.repositories import bookings_repository, units_repository
from staybook.observability.correlation import get_correlation_id

router = APIRouter(tags=["bookings"])


class ManualBookingRequest(BaseModel):
    guest_id: str
    start: date
    end: date
    extras: list[ExtraRequest] = []


class CancelBookingRequest(BaseModel):
    reason: str = Field(..., min_length=1)


def _serialize_booking(booking: dict[str, Any]) -> dict[str, Any]:
    cancellation = booking["cancellation"]
    cancelled_at = cancellation["cancelled_at"]
    return {
        **booking,
        "start_date": booking["start_date"].isoformat(),
        "end_date": booking["end_date"].isoformat(),
        "created_at": booking["created_at"].isoformat() if booking["created_at"] else None,
        "cancellation": {
            **cancellation,
            "cancelled_at": cancelled_at.isoformat() if cancelled_at else None,
        },
    }


@router.post("/units/{unit_id}/bookings", status_code=201)
def create_manual_booking(
    body: ManualBookingRequest,
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Book a unit directly, without payment. Unit host or admin only."""
    require_unit_host(user, unit_id)

    try:
        booking = bookings.create_manual(
            unit_id=unit_id,
            guest_id=body.guest_id,
            start=body.start,
            end=body.end,
            extras=[e.model_dump(exclude_none=True) for e in body.extras],
            correlation_id=get_correlation_id(),
        )
    except (InvalidDateRangeError, QuoteValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except bookings.UnitNotFoundError:
        raise HTTPException(status_code=404, detail="Unit not found")
    except CalendarConflictError as e:
        raise HTTPException(status_code=409, detail=conflict_detail(e))

    return {
        "id": booking["id"],
        "public_id": booking["public_id"],
        "status": booking["status"],
        "start_date": booking["start_date"].isoformat(),
        "end_date": booking["end_date"].isoformat(),
        "amount_breakdown": booking["amount_breakdown"],
    }


@router.get("/bookings/{booking_id}")
def get_booking(
    booking_id: str = Path(..., description="Booking UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    with txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    if actor_for(user, booking) is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    return _serialize_booking(booking)


@router.post("/bookings/{booking_id}/confirm")
def confirm_booking(
    booking_id: str = Path(..., description="Booking UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Host (or admin) accepts a pending booking."""
    actor = booking_actor(user, booking_id)
    try:
        return bookings.confirm(booking_id, actor=actor, correlation_id=get_correlation_id())
    except bookings.ActorNotAllowedError:
        raise HTTPException(status_code=403, detail="Only the host can confirm")
    except bookings.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except bookings.InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/bookings/{booking_id}/cancellation-preview")
def cancellation_preview(
    booking_id: str = Path(..., description="Booking UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """What cancelling now would refund. Changes nothing."""
    actor = booking_actor(user, booking_id)
    try:
        return bookings.cancellation_preview(booking_id, actor=actor)
    except bookings.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except (bookings.BookingNotCancellableError, bookings.InvalidTransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/bookings/{booking_id}/cancel")
def cancel_booking(
    body: CancelBookingRequest,
    booking_id: str = Path(..., description="Booking UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Cancel a booking before its stay starts.

    Guests pay the tiered penalty; host and admin cancellations refund in full.
    """
    actor = booking_actor(user, booking_id)
    try:
        return bookings.cancel(
            booking_id,
            actor=actor,
            reason=body.reason,
            correlation_id=get_correlation_id(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except bookings.BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except (bookings.BookingNotCancellableError, bookings.InvalidTransitionError) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.put("/hosts/me/auto-accept/{guest_id}")
def add_auto_accept(
    guest_id: str = Path(..., description="Guest user UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Bookings from this guest start confirmed."""
    with txn() as cur:
        added = units_repository.add_auto_accept(cur, host_id=user.id, guest_id=guest_id)
    return {"guest_id": guest_id, "auto_accept": True, "changed": added}


@router.delete("/hosts/me/auto-accept/{guest_id}")
def remove_auto_accept(
    guest_id: str = Path(..., description="Guest user UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    with txn() as cur:
        removed = units_repository.remove_auto_accept(cur, host_id=user.id, guest_id=guest_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Guest not on auto-accept list")
    return {"guest_id": guest_id, "auto_accept": False, "changed": True}
