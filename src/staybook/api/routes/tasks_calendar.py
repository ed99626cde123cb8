"""Worker routes for calendar tasks: reprice fan-out, per-unit reprice, window extension."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from staybook.api.task_auth import require_task_auth
from staybook.domain import reprice
from staybook.domain.bookings import UnitNotFoundError
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context
from staybook.tasks.client import TasksClient

router = APIRouter(prefix="/tasks/calendar", tags=["tasks"])

logger = get_logger(__name__)

_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client (allows override in tests)."""
    return _tasks_client


async def _read_payload(request: Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _bad_request(error: str) -> JSONResponse:
    logger.warning(
        "invalid task payload",
        extra={"extra_fields": safe_log_context(error=error, correlationId=get_correlation_id())},
    )
    return JSONResponse(status_code=400, content={"ok": False, "error": error})


@router.post("/reprice-all")
async def handle_reprice_all(request: Request) -> JSONResponse:
    """Fan out one reprice-unit task per unit.

    Expected payload: {"settings_version": int}
    """
    require_task_auth(request)
    payload = await _read_payload(request)
    if payload is None or not isinstance(payload.get("settings_version"), int):
        return _bad_request("settings_version required")

    try:
        result = reprice.fan_out_reprice(
            _get_tasks_client(),
            settings_version=payload["settings_version"],
            correlation_id=get_correlation_id(),
        )
    except reprice.RepriceEnqueueError as e:
        # Non-2xx makes the queue redeliver; already-enqueued units are skipped.
        return JSONResponse(status_code=503, content={"ok": False, "error": str(e)})
    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/reprice-unit")
async def handle_reprice_unit(request: Request) -> JSONResponse:
    """Seed and reprice one unit's forward window.

    Expected payload: {"unit_id": str, "settings_version": int | None}

    A failure propagates as 500 so the queue retries this unit.
    """
    require_task_auth(request)
    payload = await _read_payload(request)
    if payload is None or not payload.get("unit_id"):
        return _bad_request("unit_id required")

    try:
        result = reprice.reprice_unit(
            unit_id=payload["unit_id"],
            settings_version=payload.get("settings_version"),
        )
    except UnitNotFoundError:
        # Deleted units are not retried
        return JSONResponse(status_code=200, content={"ok": True, "status": "unit_not_found"})

    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/extend-window")
async def handle_extend_window(request: Request) -> JSONResponse:
    """Seed every unit up to the end of the rolling window."""
    require_task_auth(request)
    result = reprice.extend_window()
    return JSONResponse(status_code=200, content={"ok": True, **result})
