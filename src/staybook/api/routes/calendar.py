"""Unit calendar endpoints: read nights, override prices, block/unblock."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from pydantic import BaseModel, Field

from staybook.api.access import UUID_PATTERN, require_unit_host
from staybook.api.auth import CurrentUser, get_current_user
from staybook.domain import calendar
from staybook.infra.db import txn
from staybook.infra.repositories import calendar_repository, units_repository
from staybook.infra.time import month_bounds, utc_today
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

router = APIRouter(prefix="/units/{unit_id}/calendar", tags=["calendar"])

logger = get_logger(__name__)


class ManualPriceRequest(BaseModel):
    nights: list[date] = Field(..., min_length=1)
    price_before_fee: int = Field(..., ge=0)
    price_with_fee: int = Field(..., ge=0)


class AvailabilityRequest(BaseModel):
    nights: list[date] = Field(..., min_length=1)
    status: str = Field(..., pattern="^(available|blocked)$")
    note: str | None = None


def _serialize_night(night: dict) -> dict:
    return {**night, "night": night["night"].isoformat()}


@router.get("")
def get_calendar(
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
    month: int | None = Query(None, ge=1, le=12),
    year: int | None = Query(None, ge=2000, le=2100),
) -> dict:
    """Calendar nights of a unit for one month (current month by default).

    Each night carries the public id of the booking holding it, if any.
    """
    today = utc_today()
    start, end = month_bounds(year or today.year, month or today.month)

    with txn() as cur:
        if units_repository.get_unit(cur, unit_id) is None:
            raise HTTPException(status_code=404, detail="Unit not found")
        nights = calendar_repository.list_nights(cur, unit_id=unit_id, start=start, end=end)

    return {
        "unit_id": unit_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "nights": [_serialize_night(n) for n in nights],
    }


@router.put("/prices")
def set_prices(
    body: ManualPriceRequest,
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Override nightly prices. Booked nights are reported as skipped."""
    require_unit_host(user, unit_id)

    with txn() as cur:
        result = calendar.set_manual_price(
            cur,
            unit_id=unit_id,
            nights=body.nights,
            price_before_fee=body.price_before_fee,
            price_with_fee=body.price_with_fee,
        )

    logger.info(
        "manual prices set",
        extra={
            "extra_fields": safe_log_context(
                unit_id=unit_id,
                updated=len(result["updated"]),
                skipped=len(result["skipped"]),
                correlationId=get_correlation_id(),
            )
        },
    )
    return {
        "updated": [d.isoformat() for d in result["updated"]],
        "skipped": [d.isoformat() for d in result["skipped"]],
    }


@router.put("/availability")
def set_availability(
    body: AvailabilityRequest,
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Block or unblock nights. Booked nights are reported as skipped."""
    require_unit_host(user, unit_id)

    try:
        with txn() as cur:
            result = calendar.set_availability(
                cur,
                unit_id=unit_id,
                nights=body.nights,
                status=body.status,
                note=body.note,
            )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "updated": [d.isoformat() for d in result["updated"]],
        "skipped": [d.isoformat() for d in result["skipped"]],
    }
