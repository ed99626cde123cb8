"""Cloud Tasks backend for GCP deployment."""

from __future__ import annotations

import json
import os
from datetime import datetime
from typing import Any

from google.api_core.exceptions import AlreadyExists
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from staybook.observability.correlation import CORRELATION_ID_HEADER
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

logger = get_logger(__name__)

DEFAULT_QUEUE = "staybook-default"


def task_name_for(task_id: str) -> str:
    """Cloud Tasks names allow letters, digits, hyphens and underscores only."""
    return "".join(c if c.isalnum() or c in "-_" else "-" for c in task_id)


def enqueue_cloud_task(
    task_id: str,
    url_path: str,
    payload: dict[str, Any],
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Create a Cloud Task that POSTs ``payload`` to the worker.

    The task name is derived from task_id, so Cloud Tasks drops duplicates.

    Returns:
        True once the task exists (created now or earlier).

    Raises:
        RuntimeError: If required env vars are not set.
    """
    project = os.environ.get("GOOGLE_CLOUD_PROJECT")
    location = os.environ.get("GCP_LOCATION", "asia-south1")
    queue = os.environ.get("GCP_TASKS_QUEUE", DEFAULT_QUEUE)
    worker_url = os.environ.get("WORKER_BASE_URL")
    service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")

    if not project:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT required for Cloud Tasks")
    if not worker_url:
        raise RuntimeError("WORKER_BASE_URL required for Cloud Tasks")
    if not service_account:
        raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")

    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(project, location, queue)

    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers[CORRELATION_ID_HEADER] = correlation_id

    task: dict[str, Any] = {
        "name": f"{parent}/tasks/{task_name_for(task_id)}",
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{worker_url.rstrip('/')}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": service_account,
                "audience": worker_url,
            },
        },
    }

    if schedule_time:
        timestamp = timestamp_pb2.Timestamp()
        timestamp.FromDatetime(schedule_time)
        task["schedule_time"] = timestamp

    try:
        response = client.create_task(parent=parent, task=task)
    except AlreadyExists:
        logger.info(
            "cloud task already exists (dedupe)",
            extra={"extra_fields": safe_log_context(task_id=task_id, correlationId=correlation_id)},
        )
        return True

    logger.info(
        "cloud task enqueued",
        extra={
            "extra_fields": safe_log_context(
                task_name=response.name,
                url_path=url_path,
                correlationId=correlation_id,
            )
        },
    )
    return True
