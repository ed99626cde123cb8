"""Tests that every worker task endpoint requires task authentication.

Without credentials each endpoint answers 401; with auth mocked the request
reaches the handler.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from staybook.api.factory import create_app

TASK_ENDPOINTS = [
    ("/tasks/calendar/reprice-all", {"settings_version": 1}),
    ("/tasks/calendar/reprice-unit", {"unit_id": "u1", "settings_version": 1}),
    ("/tasks/calendar/extend-window", {}),
    ("/tasks/bookings/complete-due", {}),
    ("/tasks/ledger/reconcile", {}),
]


@pytest.fixture
def worker_client():
    """Worker app without any auth mock."""
    return TestClient(create_app(role="worker"))


@pytest.fixture
def authed():
    with patch("staybook.api.task_auth.verify_task_auth", return_value=True):
        yield


class TestNoAuth:
    @pytest.mark.parametrize("path,payload", TASK_ENDPOINTS)
    def test_no_auth_returns_401(self, worker_client, path, payload):
        response = worker_client.post(path, json=payload)
        assert response.status_code == 401

    @pytest.mark.parametrize("path,payload", TASK_ENDPOINTS)
    def test_wrong_secret_returns_401(self, worker_client, monkeypatch, path, payload):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "staybook-tasks-local")
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "right-secret")

        response = worker_client.post(path, json=payload, headers={"X-Internal-Task-Secret": "wrong"})
        assert response.status_code == 401


class TestLocalDevSecret:
    def test_shared_secret_accepted(self, worker_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "staybook-tasks-local")
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "right-secret")

        with patch(
            "staybook.api.routes.tasks_ledger.reconcile",
            return_value={"released_bookings": 0, "flagged_records": 0},
        ):
            response = worker_client.post(
                "/tasks/ledger/reconcile", json={}, headers={"X-Internal-Task-Secret": "right-secret"}
            )
        assert response.status_code == 200

    def test_secret_ignored_outside_local_dev(self, worker_client, monkeypatch):
        monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "https://worker.example.com")
        monkeypatch.setenv("INTERNAL_TASK_SECRET", "right-secret")

        response = worker_client.post(
            "/tasks/ledger/reconcile", json={}, headers={"X-Internal-Task-Secret": "right-secret"}
        )
        assert response.status_code == 401


class TestRepriceAllTask:
    def test_missing_version_400(self, worker_client, authed):
        response = worker_client.post("/tasks/calendar/reprice-all", json={})
        assert response.status_code == 400

    def test_fans_out(self, worker_client, authed):
        import staybook.api.routes.tasks_calendar as tasks_module

        mock_client = MagicMock()
        original_getter = tasks_module._get_tasks_client
        tasks_module._get_tasks_client = lambda: mock_client
        try:
            with patch(
                "staybook.domain.reprice.fan_out_reprice",
                return_value={"status": "ok", "units": 2, "enqueued": 2},
            ) as fan_out:
                response = worker_client.post(
                    "/tasks/calendar/reprice-all", json={"settings_version": 3}
                )
        finally:
            tasks_module._get_tasks_client = original_getter

        assert response.status_code == 200
        assert response.json() == {"ok": True, "status": "ok", "units": 2, "enqueued": 2}
        assert fan_out.call_args.args[0] is mock_client
        assert fan_out.call_args.kwargs["settings_version"] == 3

    def test_enqueue_failure_returns_503_for_redelivery(self, worker_client, authed):
        from staybook.domain.reprice import RepriceEnqueueError

        with patch(
            "staybook.domain.reprice.fan_out_reprice",
            side_effect=RepriceEnqueueError("1 of 2 reprice-unit tasks not enqueued"),
        ):
            response = worker_client.post("/tasks/calendar/reprice-all", json={"settings_version": 3})

        assert response.status_code == 503
        assert response.json()["ok"] is False


class TestRepriceUnitTask:
    def test_missing_unit_400(self, worker_client, authed):
        response = worker_client.post("/tasks/calendar/reprice-unit", json={"settings_version": 1})
        assert response.status_code == 400

    def test_deleted_unit_not_retried(self, worker_client, authed):
        from staybook.domain.bookings import UnitNotFoundError

        with patch("staybook.domain.reprice.reprice_unit", side_effect=UnitNotFoundError("gone")):
            response = worker_client.post("/tasks/calendar/reprice-unit", json={"unit_id": "u1"})

        assert response.status_code == 200
        assert response.json()["status"] == "unit_not_found"

    def test_stale(self, worker_client, authed):
        with patch(
            "staybook.domain.reprice.reprice_unit",
            return_value={"status": "stale", "current_version": 4},
        ):
            response = worker_client.post(
                "/tasks/calendar/reprice-unit", json={"unit_id": "u1", "settings_version": 3}
            )

        assert response.json()["status"] == "stale"


class TestSweepTasks:
    def test_complete_due(self, worker_client, authed):
        with patch("staybook.api.routes.tasks_bookings.complete_due_bookings", return_value=["b1"]):
            response = worker_client.post("/tasks/bookings/complete-due", json={})

        assert response.json() == {"ok": True, "completed": 1}

    def test_extend_window(self, worker_client, authed):
        with patch(
            "staybook.domain.reprice.extend_window",
            return_value={"units": 3, "seeded": 10, "failed": 0},
        ):
            response = worker_client.post("/tasks/calendar/extend-window", json={})

        assert response.json()["seeded"] == 10
