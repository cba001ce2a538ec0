"""
Tests for health endpoints.
"""

from __future__ import annotations

import sqlite3

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.sqlite_db import SQLiteSubscriptionRepo
from src.api.deps import get_health_registry
from src.shell.http.health import (
    CheckResult,
    DatabaseCheck,
    HealthCheckRegistry,
    HealthStatus,
    StartupCheck,
    StartupTracker,
    create_health_router,
    mark_startup_complete,
    overall_status,
)

# --- Test Fixtures ---


@pytest.fixture
def registry() -> HealthCheckRegistry:
    """Create a fresh registry for testing."""
    return HealthCheckRegistry()


@pytest.fixture
def health_client(registry: HealthCheckRegistry) -> TestClient:
    app = FastAPI()
    app.include_router(create_health_router(lambda: registry, version="9.9.9"))
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_startup() -> None:
    yield
    StartupTracker._start_time = None


class FailingCheck:
    name = "broken"

    def check(self) -> CheckResult:
        return CheckResult(name=self.name, status=HealthStatus.UNHEALTHY, message="down")


# --- Status Aggregation ---


class TestOverallStatus:
    def test_all_healthy(self) -> None:
        results = [CheckResult("a", HealthStatus.HEALTHY), CheckResult("b", HealthStatus.HEALTHY)]
        assert overall_status(results) == HealthStatus.HEALTHY

    def test_any_unhealthy(self) -> None:
        results = [CheckResult("a", HealthStatus.DEGRADED), CheckResult("b", HealthStatus.UNHEALTHY)]
        assert overall_status(results) == HealthStatus.UNHEALTHY

    def test_degraded(self) -> None:
        results = [CheckResult("a", HealthStatus.HEALTHY), CheckResult("b", HealthStatus.DEGRADED)]
        assert overall_status(results) == HealthStatus.DEGRADED


# --- Checks ---


class TestChecks:
    def test_startup_check_before_and_after(self) -> None:
        assert StartupCheck().check().status == HealthStatus.DEGRADED
        mark_startup_complete()
        assert StartupCheck().check().status == HealthStatus.HEALTHY

    def test_database_check_healthy(self, test_repo: SQLiteSubscriptionRepo) -> None:
        result = DatabaseCheck(test_repo.ping).check()
        assert result.status == HealthStatus.HEALTHY
        assert result.latency_ms >= 0

    def test_database_check_missing_table(self, tmp_path) -> None:
        db_path = str(tmp_path / "empty.db")
        sqlite3.connect(db_path).close()
        result = DatabaseCheck(SQLiteSubscriptionRepo(db_path).ping).check()
        assert result.status == HealthStatus.UNHEALTHY
        assert "email_subscriptions" in result.message


# --- Router ---


class TestHealthRouter:
    def test_health_ok(self, health_client: TestClient, registry: HealthCheckRegistry) -> None:
        mark_startup_complete()
        registry.register(StartupCheck())

        response = health_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "9.9.9"
        assert data["checks"][0]["name"] == "startup"

    def test_health_unhealthy(self, health_client: TestClient, registry: HealthCheckRegistry) -> None:
        registry.register(FailingCheck())
        response = health_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_degraded_still_200(self, health_client: TestClient, registry: HealthCheckRegistry) -> None:
        registry.register(StartupCheck())  # Not started -> degraded
        response = health_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_ready_requires_all_healthy(
        self, health_client: TestClient, registry: HealthCheckRegistry
    ) -> None:
        registry.register(StartupCheck())
        assert health_client.get("/health/ready").status_code == 503
        mark_startup_complete()
        assert health_client.get("/health/ready").json()["ready"] is True

    def test_live(self, health_client: TestClient) -> None:
        response = health_client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["alive"] is True


class TestAppHealth:
    def test_app_health_uses_subscription_table(
        self, client: TestClient, test_repo: SQLiteSubscriptionRepo
    ) -> None:
        mark_startup_complete()
        response = client.get("/health")
        assert response.status_code == 200
        names = {c["name"] for c in response.json()["checks"]}
        assert names == {"startup", "database"}

    def test_registry_wires_database_check(self, test_repo: SQLiteSubscriptionRepo) -> None:
        registry = get_health_registry(repo=test_repo)
        results = registry.run_all()
        assert [r.name for r in results] == ["startup", "database"]
        assert results[1].status == HealthStatus.HEALTHY
