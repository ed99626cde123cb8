"""Outbox events: booking and settlement facts for asynchronous delivery."""

import json
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from staybook.observability.correlation import get_correlation_id

_INSERT_EVENT = """
    INSERT INTO outbox_events (event_type, aggregate_type, aggregate_id, payload, correlation_id)
    VALUES (%s, %s, %s, %s, %s)
    RETURNING id
"""


def emit_event(
    cur: PgCursor,
    *,
    event_type: str,
    aggregate_type: str,
    aggregate_id: str,
    payload: dict[str, Any] | None = None,
    correlation_id: str | None = None,
) -> int:
    """Append one event in the caller's transaction and return its id.

    Payloads carry ids and amounts only. Without an explicit correlation_id
    the one bound to the current request or task is recorded.
    """
    body = json.dumps(payload, default=str) if payload else None
    cur.execute(
        _INSERT_EVENT,
        (
            event_type,
            aggregate_type,
            aggregate_id,
            body,
            correlation_id or get_correlation_id() or None,
        ),
    )
    return cur.fetchone()[0]
