"""Checkout endpoints - open a gateway payment for a quote or event tickets."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field

from staybook.api.access import UUID_PATTERN
from staybook.api.auth import CurrentUser, get_current_user
from staybook.api.routes.quotes import conflict_detail
from staybook.domain import checkout
from staybook.domain.bookings import UnitNotFoundError
from staybook.domain.calendar import CalendarConflictError, InvalidDateRangeError
from staybook.domain.event_bookings import EventFullError, EventNotFoundError
from staybook.domain.quote import (
    InconsistentSnapshotError,
    QuoteValidationError,
    SnapshotTamperedError,
)
from staybook.observability.correlation import get_correlation_id

router = APIRouter(tags=["checkout"])


class CheckoutRequest(BaseModel):
    gateway: str
    snapshot: dict[str, Any]
    signature: str


class EventCheckoutRequest(BaseModel):
    gateway: str
    attendees: int = Field(..., ge=1)


@router.post("/checkout", status_code=201)
def start_checkout(
    body: CheckoutRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Start paying for a quoted stay.

    The snapshot and signature must be exactly what /units/{id}/quote
    returned.
    """
    try:
        return checkout.start_unit_checkout(
            user_id=user.id,
            gateway=body.gateway,
            snapshot=body.snapshot,
            signature=body.signature,
            correlation_id=get_correlation_id(),
        )
    except (
        checkout.UnsupportedGatewayError,
        SnapshotTamperedError,
        InconsistentSnapshotError,
        QuoteValidationError,
        InvalidDateRangeError,
    ) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnitNotFoundError:
        raise HTTPException(status_code=404, detail="Unit not found")
    except CalendarConflictError as e:
        raise HTTPException(status_code=409, detail=conflict_detail(e))
    except checkout.GatewayOrderError:
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")


@router.post("/events/{event_id}/checkout", status_code=201)
def start_event_checkout(
    body: EventCheckoutRequest,
    event_id: str = Path(..., description="Event UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Start paying for event tickets."""
    try:
        return checkout.start_event_checkout(
            user_id=user.id,
            event_id=event_id,
            gateway=body.gateway,
            attendees=body.attendees,
            correlation_id=get_correlation_id(),
        )
    except (checkout.UnsupportedGatewayError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except EventFullError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except checkout.GatewayOrderError:
        raise HTTPException(status_code=502, detail="Payment gateway unavailable")
