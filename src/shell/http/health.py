"""
Health endpoints for the newsletter service.

- /health: aggregate status with per-check detail (503 only when unhealthy)
- /health/ready: 200 only when every check is healthy
- /health/live: process is up; never touches the database
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class CheckResult:
    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": round(self.latency_ms, 3),
        }


class HealthCheck(Protocol):
    name: str

    def check(self) -> CheckResult: ...


class StartupTracker:
    """Process start marker; set once the lifespan handler has run."""

    _start_time: float | None = None

    @classmethod
    def mark_started(cls) -> None:
        cls._start_time = time.monotonic()

    @classmethod
    def is_started(cls) -> bool:
        return cls._start_time is not None

    @classmethod
    def get_uptime_seconds(cls) -> float:
        return 0.0 if cls._start_time is None else time.monotonic() - cls._start_time


class HealthCheckRegistry:
    """Ordered collection of checks run on every health request."""

    def __init__(self) -> None:
        self._checks: list[HealthCheck] = []

    def register(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def run_all(self) -> list[CheckResult]:
        return [c.check() for c in self._checks]

    def clear(self) -> None:
        self._checks.clear()


def overall_status(results: list[CheckResult]) -> HealthStatus:
    """Worst status wins; an empty result list counts as healthy."""
    statuses = {r.status for r in results}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


class StartupCheck:
    name = "startup"

    def check(self) -> CheckResult:
        if not StartupTracker.is_started():
            return CheckResult(self.name, HealthStatus.DEGRADED, "Startup not complete")
        return CheckResult(
            self.name,
            HealthStatus.HEALTHY,
            "Startup complete",
            details={"uptime_seconds": StartupTracker.get_uptime_seconds()},
        )


class DatabaseCheck:
    """
    Runs a connectivity callable against the subscription store.

    Any exception from it marks the check unhealthy.
    """

    name = "database"

    def __init__(self, ping: Callable[[], Any]) -> None:
        self._ping = ping

    def check(self) -> CheckResult:
        started = time.perf_counter()
        try:
            self._ping()
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            outcome = CheckResult(self.name, HealthStatus.UNHEALTHY, f"Database error: {e!s}")
        else:
            outcome = CheckResult(self.name, HealthStatus.HEALTHY, "Database connected")
        outcome.latency_ms = (time.perf_counter() - started) * 1000
        return outcome


def create_health_router(
    registry_provider: Callable[..., HealthCheckRegistry],
    version: str = "0.0.0",
    environment: str = "development",
) -> APIRouter:
    """
    Build the health router.

    `registry_provider` is resolved through FastAPI's dependency system so
    tests can swap it with `app.dependency_overrides`.
    """
    router = APIRouter(tags=["Health"])

    @router.get("/health", response_model=None)
    def health(registry: HealthCheckRegistry = Depends(registry_provider)) -> JSONResponse:
        results = registry.run_all()
        overall = overall_status(results)
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if overall is HealthStatus.UNHEALTHY
            else status.HTTP_200_OK
        )
        return JSONResponse(
            status_code=code,
            content={
                "status": overall.value,
                "timestamp": datetime.now(UTC).isoformat(),
                "version": version,
                "environment": environment,
                "uptime_seconds": StartupTracker.get_uptime_seconds(),
                "checks": [r.to_dict() for r in results],
            },
        )

    @router.get("/health/ready", response_model=None)
    def ready(registry: HealthCheckRegistry = Depends(registry_provider)) -> JSONResponse:
        results = registry.run_all()
        is_ready = overall_status(results) is HealthStatus.HEALTHY
        return JSONResponse(
            status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ready": is_ready, "checks": [r.to_dict() for r in results]},
        )

    @router.get("/health/live", response_model=None)
    def live() -> JSONResponse:
        return JSONResponse({"alive": True, "uptime_seconds": StartupTracker.get_uptime_seconds()})

    return router


def mark_startup_complete() -> None:
    StartupTracker.mark_started()
