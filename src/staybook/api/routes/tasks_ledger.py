"""Worker routes for ledger reconciliation."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from staybook.api.task_auth import require_task_auth
from staybook.domain.reconciliation import reconcile
from staybook.observability.correlation import get_correlation_id

router = APIRouter(prefix="/tasks/ledger", tags=["tasks"])


@router.post("/reconcile")
async def handle_reconcile(request: Request) -> JSONResponse:
    """Release nights of cancelled bookings and flag orphaned payments."""
    require_task_auth(request)
    result = reconcile(correlation_id=get_correlation_id())
    return JSONResponse(status_code=200, content={"ok": True, **result})
