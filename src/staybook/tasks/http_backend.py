"""HTTP backend for tasks - POSTs tasks straight to the worker.

Used where the public and worker services run side by side (local, staging).
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from staybook.api.task_auth import LOCAL_DEV_AUDIENCE
from staybook.observability.correlation import CORRELATION_ID_HEADER
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_WORKER_BASE_URL = "http://worker:8000"


def _worker_base_url() -> str:
    return os.environ.get("WORKER_BASE_URL", DEFAULT_WORKER_BASE_URL).rstrip("/")


def _timeout() -> int:
    return int(os.environ.get("TASKS_HTTP_TIMEOUT", "30"))


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch a Google ID token for ``audience``.

    Needs the metadata server or application default credentials.

    Returns:
        Signed ID token, or None if it could not be fetched.
    """
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception:
        logger.exception(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience)},
        )
        return None


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict[str, Any],
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """POST a task to the worker.

    Scheduled tasks are not supported here; they are logged and dropped.

    Returns:
        True if the worker answered 2xx.
    """
    if schedule_time is not None:
        logger.warning(
            "HTTP backend does not support scheduled tasks",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return True

    base_url = _worker_base_url()
    url = f"{base_url}{url_path}"
    headers = {
        "Content-Type": "application/json",
        CORRELATION_ID_HEADER: correlation_id or "",
        "X-Task-Id": task_id,
    }

    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        if secret:
            headers["X-Internal-Task-Secret"] = secret
    else:
        token = _fetch_oidc_token(base_url)
        if not token:
            logger.error(
                "HTTP task enqueue aborted: OIDC token unavailable",
                extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
            )
            return False
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=_timeout())
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={
                "extra_fields": safe_log_context(
                    task_id=task_id,
                    url_path=url_path,
                    error=str(e),
                )
            },
        )
        return False

    logger.info(
        "HTTP task enqueued",
        extra={"extra_fields": safe_log_context(task_id=task_id, url_path=url_path)},
    )
    return True
