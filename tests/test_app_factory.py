"""Tests for app factory and role-based routing."""

import pytest
from fastapi.testclient import TestClient

from staybook.api.factory import create_app


class TestPublicRole:
    """Tests for APP_ROLE=public."""

    def test_health_available(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_tasks_not_mounted(self):
        client = TestClient(create_app(role="public"))
        assert client.get("/tasks/health").status_code == 404

    def test_task_routes_not_mounted(self):
        client = TestClient(create_app(role="public"))
        response = client.post("/tasks/ledger/reconcile", json={})
        assert response.status_code == 404


class TestWorkerRole:
    """Tests for APP_ROLE=worker."""

    def test_health_available(self):
        client = TestClient(create_app(role="worker"))
        assert client.get("/health").status_code == 200

    def test_tasks_mounted(self):
        client = TestClient(create_app(role="worker"))
        response = client.get("/tasks/health")
        assert response.status_code == 200
        assert response.json()["subsystem"] == "tasks"


class TestRoleFromEnv:
    def test_app_role_env(self, monkeypatch):
        monkeypatch.setenv("APP_ROLE", "worker")
        client = TestClient(create_app())
        assert client.get("/tasks/health").status_code == 200

    def test_default_role_is_public(self, monkeypatch):
        monkeypatch.delenv("APP_ROLE", raising=False)
        client = TestClient(create_app())
        assert client.get("/tasks/health").status_code == 404


class TestCorrelationId:
    """Tests for correlation ID middleware."""

    def test_generates_correlation_id(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health")
        assert len(response.headers["X-Correlation-ID"]) == 32

    def test_echoes_incoming_correlation_id(self):
        client = TestClient(create_app(role="public"))
        response = client.get("/health", headers={"X-Correlation-ID": "corr-abc"})
        assert response.headers["X-Correlation-ID"] == "corr-abc"


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        create_app(role="admin")
