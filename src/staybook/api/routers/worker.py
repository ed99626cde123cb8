"""Worker/internal routes (APP_ROLE=worker)."""

from fastapi import APIRouter

from staybook.api.routes import tasks_bookings, tasks_calendar, tasks_ledger

router = APIRouter()


@router.get("/tasks/health")
def tasks_health() -> dict:
    """Tasks subsystem health check."""
    return {"status": "ok", "subsystem": "tasks"}


router.include_router(tasks_calendar.router)
router.include_router(tasks_bookings.router)
router.include_router(tasks_ledger.router)
