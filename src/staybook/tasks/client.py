"""Tasks client with idempotent enqueue.

Backends, selected with the TASKS_BACKEND env var:
- inline (default): records the task without running it (dev/tests)
- http: POSTs the task to the worker
- cloud_tasks: creates a Google Cloud Task
"""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

BACKENDS = ("inline", "http", "cloud_tasks")


class TasksClient:
    """Enqueue worker tasks by URL path, at most once per task_id.

    Repricing, window extension and reconciliation run as worker tasks so the
    request that triggers them returns immediately.
    """

    def __init__(self, backend: str | None = None) -> None:
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")
        if self._backend not in BACKENDS:
            raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")
        self._seen_ids: set[str] = set()
        self._recorded: list[dict[str, Any]] = []

    @property
    def backend(self) -> str:
        return self._backend

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict[str, Any],
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Enqueue a task for the worker endpoint at ``url_path``.

        Args:
            task_id: Unique identifier; a repeated id is a no-op.
            url_path: Worker endpoint path (e.g. "/tasks/calendar/reprice-unit").
            payload: Task data (ids and numbers only, no PII).
            correlation_id: Optional correlation ID forwarded to the worker.
            schedule_time: Optional future execution time.

        Returns:
            True if the task was enqueued, False if task_id was already seen
            or the backend failed to deliver it.
        """
        if task_id in self._seen_ids:
            return False

        if self._backend == "inline":
            self._recorded.append({
                "task_id": task_id,
                "url_path": url_path,
                "payload": payload,
                "correlation_id": correlation_id,
                "schedule_time": schedule_time,
            })
            delivered = True
        elif self._backend == "http":
            from staybook.tasks.http_backend import enqueue_http

            delivered = enqueue_http(task_id, url_path, payload, correlation_id, schedule_time)
        else:
            from staybook.tasks.cloud_tasks_backend import enqueue_cloud_task

            delivered = enqueue_cloud_task(task_id, url_path, payload, correlation_id, schedule_time)

        # Only delivered ids are remembered so a failed enqueue can be retried.
        if delivered:
            self._seen_ids.add(task_id)
        return delivered

    def was_enqueued(self, task_id: str) -> bool:
        return task_id in self._seen_ids

    def get_recorded_tasks(self) -> list[dict[str, Any]]:
        """Tasks recorded by the inline backend."""
        return list(self._recorded)

    def clear(self) -> None:
        self._seen_ids.clear()
        self._recorded.clear()
