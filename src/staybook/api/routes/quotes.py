"""Pricing quote endpoint."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Path
from pydantic import BaseModel, Field

from staybook.api.access import UUID_PATTERN
from staybook.domain.calendar import CalendarConflictError, InvalidDateRangeError
from staybook.domain.quote import QuoteValidationError, build_quote
from staybook.infra.db import txn
from staybook.infra.platform_settings import load_platform_settings
from staybook.infra.repositories import units_repository
from staybook.infra.time import utc_today

router = APIRouter(tags=["quotes"])


class ExtraRequest(BaseModel):
    feature_type: str
    days: int | None = Field(None, ge=1)


class QuoteRequest(BaseModel):
    start: date
    end: date
    guests: int = Field(1, ge=1)
    extras: list[ExtraRequest] = []


def conflict_detail(e: CalendarConflictError) -> dict:
    return {
        "message": str(e),
        "conflicts": [
            {"night": c["night"].isoformat(), "status": c["status"]} for c in e.conflicts
        ],
    }


@router.post("/units/{unit_id}/quote")
def quote(
    body: QuoteRequest,
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
) -> dict:
    """Quote a stay from the current calendar.

    Returns the amount breakdown, the per-night lines and a sealed snapshot
    that must be sent back unchanged to /checkout.
    """
    try:
        with txn() as cur:
            unit = units_repository.get_unit(cur, unit_id)
            if unit is None:
                raise HTTPException(status_code=404, detail="Unit not found")

            quoted = build_quote(
                cur,
                unit=unit,
                start=body.start,
                end=body.end,
                extras=[e.model_dump(exclude_none=True) for e in body.extras],
                settings=load_platform_settings(cur),
                today=utc_today(),
            )
    except (InvalidDateRangeError, QuoteValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CalendarConflictError as e:
        raise HTTPException(status_code=409, detail=conflict_detail(e))

    snapshot = quoted["snapshot"]
    return {
        "amount_breakdown": snapshot["amount_breakdown"],
        "nights": snapshot["nights"],
        "discounts": snapshot["discounts"],
        "extra_features": snapshot["extra_features"],
        "currency": snapshot["currency"],
        "snapshot": snapshot,
        "signature": quoted["signature"],
    }
