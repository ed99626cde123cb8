"""Pricing settings endpoints. Changes are stored, repricing runs as tasks."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, Field

from staybook.api.access import UUID_PATTERN, require_admin, require_unit_host
from staybook.api.auth import CurrentUser, get_current_user
from staybook.domain import reprice
from staybook.domain.bookings import UnitNotFoundError
from staybook.observability.correlation import get_correlation_id
from staybook.tasks.client import TasksClient

router = APIRouter(tags=["settings"])

_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client (allows override in tests)."""
    return _tasks_client


class FeeSettingsRequest(BaseModel):
    unit_fee_percent: Decimal | None = Field(None, ge=0, le=100)
    event_fee_percent: Decimal | None = Field(None, ge=0, le=100)


class UnitPricingRequest(BaseModel):
    base_price: int = Field(..., ge=0)
    weekend_price_enabled: bool = False
    weekend_price: int | None = Field(None, ge=0)
    weekend_days: list[int] | None = None
    discounts: dict[str, Any] | None = None
    extra_features: dict[str, Any] | None = None


@router.put("/admin/settings/fees", status_code=202)
def update_fees(
    body: FeeSettingsRequest,
    user: CurrentUser = Depends(require_admin),
) -> dict:
    """Change platform fee percentages; calendar repricing is enqueued."""
    try:
        settings = reprice.change_platform_fees(
            _get_tasks_client(),
            unit_fee_percent=body.unit_fee_percent,
            event_fee_percent=body.event_fee_percent,
            correlation_id=get_correlation_id(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except reprice.RepriceEnqueueError:
        raise HTTPException(
            status_code=503, detail="Fees saved but repricing could not be scheduled; retry"
        )

    return {
        "unit_fee_percent": str(settings.unit_fee_percent),
        "event_fee_percent": str(settings.event_fee_percent),
        "version": settings.version,
    }


@router.put("/units/{unit_id}/pricing", status_code=202)
def update_unit_pricing(
    body: UnitPricingRequest,
    unit_id: str = Path(..., description="Unit UUID", pattern=UUID_PATTERN),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Change a unit's pricing rules; its calendar repricing is enqueued."""
    require_unit_host(user, unit_id)

    try:
        unit = reprice.change_unit_pricing(
            _get_tasks_client(),
            unit_id=unit_id,
            base_price=body.base_price,
            weekend_price_enabled=body.weekend_price_enabled,
            weekend_price=body.weekend_price,
            weekend_days=body.weekend_days,
            discounts=body.discounts,
            extra_features=body.extra_features,
            correlation_id=get_correlation_id(),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UnitNotFoundError:
        raise HTTPException(status_code=404, detail="Unit not found")
    except reprice.RepriceEnqueueError:
        raise HTTPException(
            status_code=503, detail="Pricing saved but repricing could not be scheduled; retry"
        )

    return {"unit": unit, "reprice": "enqueued"}
