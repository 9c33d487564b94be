"""Health check endpoints for monitoring and deployment verification."""

import time

from fastapi import APIRouter, Response, status

from src.api.deps import AppSettings, Repository
from src.core.scheduler import get_scheduler, get_task_supervisor
from src.schemas.common import (
    CheckResult,
    HealthResponse,
    HealthStatus,
    ReadinessResponse,
    SchedulerStatsResponse,
)
from src.services.dispatch_service import in_flight_orders

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used for liveness probes.",
)
async def health_check() -> HealthResponse:
    """Return basic health status.

    This endpoint should always return 200 if the service is running.
    It does not check external dependencies.
    """
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "One or more dependencies unhealthy"},
    },
    summary="Readiness check",
    description="Check the job store and PrintNode configuration. Used for readiness probes.",
)
async def readiness_check(response: Response, repository: Repository, settings: AppSettings) -> ReadinessResponse:
    """Check readiness of all dependencies.

    Returns 503 if the job store is unreachable or PrintNode is not configured.
    """
    checks: list[CheckResult] = []

    start_time = time.perf_counter()
    db_result = await repository.check_connection()
    latency_ms = (time.perf_counter() - start_time) * 1000
    checks.append(
        CheckResult(
            name="job_store",
            healthy=db_result["healthy"],
            latency_ms=round(latency_ms, 2),
            error=db_result.get("error"),
        )
    )

    checks.append(
        CheckResult(
            name="printnode",
            healthy=settings.printnode_configured,
            error=None if settings.printnode_configured else "PRINTNODE_API_KEY is not set",
        )
    )

    all_healthy = all(check.healthy for check in checks)
    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status=HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY,
        checks=checks,
    )


@router.get(
    "/health/scheduler",
    response_model=SchedulerStatsResponse,
    summary="Print scheduler statistics",
)
async def scheduler_stats() -> SchedulerStatsResponse:
    """Report concurrency usage of the print scheduler."""
    return SchedulerStatsResponse(
        **get_scheduler().stats(),
        background_tasks=get_task_supervisor().active_count,
        orders_in_flight=in_flight_orders(),
    )
