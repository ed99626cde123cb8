"""Worker routes for booking sweeps."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from staybook.api.task_auth import require_task_auth
from staybook.domain.bookings import complete_due_bookings

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])


@router.post("/complete-due")
async def handle_complete_due(request: Request) -> JSONResponse:
    """Move confirmed bookings whose stay has ended to completed."""
    require_task_auth(request)
    completed = complete_due_bookings()
    return JSONResponse(status_code=200, content={"ok": True, "completed": len(completed)})
