"""Repricing - keep calendar prices in step with fees and unit pricing rules.

Changing the platform fee or a unit's pricing only records the change and
enqueues worker tasks; the request returns immediately. ``reprice-all`` fans
out one ``reprice-unit`` task per unit so a failing unit is retried by the
queue on its own. Fee-driven tasks carry the settings version of the unit-fee
change they were enqueued for and skip themselves once a newer unit-fee change
exists; event-fee changes never supersede them. Unit pricing tasks carry no
version and always reprice with the current settings.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from staybook.domain import calendar
from staybook.domain.bookings import UnitNotFoundError
from staybook.domain.pricing import UnitPricingRules
from staybook.infra.db import txn
from staybook.infra.platform_settings import PlatformSettings, load_platform_settings, update_fee_percents
from staybook.infra.repositories import units_repository
from staybook.infra.time import utc_now, utc_today
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context
from staybook.tasks.client import TasksClient

logger = get_logger(__name__)

REPRICE_ALL_PATH = "/tasks/calendar/reprice-all"
REPRICE_UNIT_PATH = "/tasks/calendar/reprice-unit"
EXTEND_WINDOW_PATH = "/tasks/calendar/extend-window"


class RepriceEnqueueError(Exception):
    """Raised when reprice work could not be handed to the task queue."""

    pass


def _validate_fee(name: str, value: Decimal | None) -> None:
    if value is not None and not (Decimal(0) <= value <= Decimal(100)):
        raise ValueError(f"{name} must be between 0 and 100")


def change_platform_fees(
    tasks_client: TasksClient,
    *,
    unit_fee_percent: Decimal | None = None,
    event_fee_percent: Decimal | None = None,
    correlation_id: str | None = None,
) -> PlatformSettings:
    """Store new fee percentages and enqueue a calendar-wide reprice.

    The new fees are committed before the reprice is enqueued.

    Raises:
        ValueError: A percentage outside 0..100, or nothing to change.
        RepriceEnqueueError: The reprice-all task could not be enqueued.
    """
    if unit_fee_percent is None and event_fee_percent is None:
        raise ValueError("no fee percentage given")
    _validate_fee("unit_fee_percent", unit_fee_percent)
    _validate_fee("event_fee_percent", event_fee_percent)

    with txn() as cur:
        settings = update_fee_percents(
            cur,
            unit_fee_percent=unit_fee_percent,
            event_fee_percent=event_fee_percent,
        )

    logger.info(
        "platform fees changed",
        extra={
            "extra_fields": safe_log_context(
                version=settings.version,
                unit_fee_percent=str(settings.unit_fee_percent),
                event_fee_percent=str(settings.event_fee_percent),
                correlationId=correlation_id,
            )
        },
    )

    # Event fees are applied at checkout; only unit fees live in the calendar.
    if unit_fee_percent is not None:
        task_id = f"reprice-all:v{settings.version}"
        if not tasks_client.enqueue_http(
            task_id=task_id,
            url_path=REPRICE_ALL_PATH,
            payload={"settings_version": settings.version},
            correlation_id=correlation_id,
        ) and not tasks_client.was_enqueued(task_id):
            raise RepriceEnqueueError(f"reprice-all for version {settings.version} not enqueued")
    return settings


def change_unit_pricing(
    tasks_client: TasksClient,
    *,
    unit_id: str,
    base_price: int,
    weekend_price_enabled: bool,
    weekend_price: int | None,
    weekend_days: list[int] | None = None,
    discounts: dict[str, Any] | None = None,
    extra_features: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Store new pricing rules for a unit and enqueue its reprice.

    Raises:
        ValueError: Negative prices or weekday numbers outside 0..6.
        UnitNotFoundError: Unknown unit.
        RepriceEnqueueError: The reprice-unit task could not be enqueued.
    """
    if base_price < 0 or (weekend_price is not None and weekend_price < 0):
        raise ValueError("prices must not be negative")
    if weekend_days is not None and any(d not in range(7) for d in weekend_days):
        raise ValueError("weekend_days must be weekday numbers 0..6")

    with txn() as cur:
        unit = units_repository.update_unit_pricing(
            cur,
            unit_id=unit_id,
            base_price=base_price,
            weekend_price_enabled=weekend_price_enabled,
            weekend_price=weekend_price,
            weekend_days=weekend_days,
            discounts=discounts,
            extra_features=extra_features,
        )
        if unit is None:
            raise UnitNotFoundError(f"Unit {unit_id} not found")

    # No settings version: a later fee change must not mark this task stale.
    if not tasks_client.enqueue_http(
        task_id=f"reprice-unit:{unit_id}:pricing:{utc_now().strftime('%Y%m%d%H%M%S%f')}",
        url_path=REPRICE_UNIT_PATH,
        payload={"unit_id": unit_id},
        correlation_id=correlation_id,
    ):
        raise RepriceEnqueueError(f"reprice-unit for unit {unit_id} not enqueued")
    return unit


def fan_out_reprice(
    tasks_client: TasksClient,
    *,
    settings_version: int,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    """Enqueue one reprice-unit task per unit.

    Units whose task was already enqueued by an earlier delivery are skipped.

    Returns:
        {"status": "stale"} if a newer unit-fee change exists, else
        {"status": "ok", "units": n, "enqueued": m}.

    Raises:
        RepriceEnqueueError: Some unit tasks could not be enqueued. The
            delivery should fail so the queue retries the fan-out.
    """
    with txn() as cur:
        current = load_platform_settings(cur)
        if settings_version < current.unit_fee_version:
            return {"status": "stale", "current_version": current.unit_fee_version}
        unit_ids = units_repository.list_unit_ids(cur)

    enqueued = 0
    failed = []
    for unit_id in unit_ids:
        task_id = f"reprice-unit:{unit_id}:v{settings_version}"
        if tasks_client.was_enqueued(task_id):
            continue
        if tasks_client.enqueue_http(
            task_id=task_id,
            url_path=REPRICE_UNIT_PATH,
            payload={"unit_id": unit_id, "settings_version": settings_version},
            correlation_id=correlation_id,
        ):
            enqueued += 1
        else:
            failed.append(unit_id)

    logger.info(
        "reprice fan-out",
        extra={
            "extra_fields": safe_log_context(
                settings_version=settings_version,
                units=len(unit_ids),
                enqueued=enqueued,
                failed=len(failed),
                correlationId=correlation_id,
            )
        },
    )
    if failed:
        raise RepriceEnqueueError(
            f"{len(failed)} of {len(unit_ids)} reprice-unit tasks not enqueued"
        )
    return {"status": "ok", "units": len(unit_ids), "enqueued": enqueued}


def reprice_unit(
    *,
    unit_id: str,
    settings_version: int | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """Seed and reprice one unit's forward window in one transaction.

    Returns:
        {"status": "stale"} when superseded by a newer unit-fee change,
        otherwise {"status": "ok", "seeded": n, "repriced": m}.

    Raises:
        UnitNotFoundError: Unknown unit.
    """
    today = today or utc_today()
    start, end = calendar.forward_window(today)

    with txn() as cur:
        settings = load_platform_settings(cur)
        if settings_version is not None and settings_version < settings.unit_fee_version:
            logger.info(
                "reprice task superseded",
                extra={
                    "extra_fields": safe_log_context(
                        unit_id=unit_id,
                        task_version=settings_version,
                        current_version=settings.unit_fee_version,
                    )
                },
            )
            return {"status": "stale", "current_version": settings.unit_fee_version}

        unit = units_repository.get_unit(cur, unit_id)
        if unit is None:
            raise UnitNotFoundError(f"Unit {unit_id} not found")

        rules = UnitPricingRules.from_unit(unit)
        seeded = calendar.seed(
            cur,
            unit_id=unit_id,
            rules=rules,
            start=start,
            end=end,
            fee_percent=settings.unit_fee_percent,
        )
        repriced = calendar.reprice(
            cur,
            unit_id=unit_id,
            rules=rules,
            start=start,
            end=end,
            fee_percent=settings.unit_fee_percent,
        )

    return {"status": "ok", "seeded": seeded, "repriced": repriced}


def extend_window(today: date | None = None) -> dict[str, int]:
    """Seed every unit up to the end of the rolling window.

    Each unit is seeded in its own transaction; a failing unit is logged and
    the sweep moves on.

    Returns:
        {"units", "seeded", "failed"}
    """
    today = today or utc_today()
    start, end = calendar.forward_window(today)

    with txn() as cur:
        settings = load_platform_settings(cur)
        unit_ids = units_repository.list_unit_ids(cur)

    seeded = 0
    failed = 0
    for unit_id in unit_ids:
        try:
            with txn() as cur:
                unit = units_repository.get_unit(cur, unit_id)
                if unit is None:
                    continue
                seeded += calendar.seed(
                    cur,
                    unit_id=unit_id,
                    rules=UnitPricingRules.from_unit(unit),
                    start=start,
                    end=end,
                    fee_percent=settings.unit_fee_percent,
                )
        except Exception:
            failed += 1
            logger.exception(
                "calendar window extension failed for unit",
                extra={"extra_fields": safe_log_context(unit_id=unit_id)},
            )

    logger.info(
        "calendar window extended",
        extra={
            "extra_fields": safe_log_context(
                units=len(unit_ids),
                seeded=seeded,
                failed=failed,
                end=end.isoformat(),
            )
        },
    )
    return {"units": len(unit_ids), "seeded": seeded, "failed": failed}
