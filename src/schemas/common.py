"""Common schemas used across the application."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Response schema for the liveness endpoint."""

    status: HealthStatus = Field(description="Current health status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    version: str = Field(default="0.1.0", description="API version")


class CheckResult(BaseModel):
    """Result of an individual dependency check."""

    name: str = Field(description="Name of the dependency being checked")
    healthy: bool = Field(description="Whether the dependency is healthy")
    latency_ms: float | None = Field(default=None, description="Response time in milliseconds")
    error: str | None = Field(default=None, description="Error message if unhealthy")


class ReadinessResponse(BaseModel):
    """Response schema for the readiness endpoint."""

    status: HealthStatus = Field(description="Overall readiness status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: list[CheckResult] = Field(default_factory=list, description="Individual check results")


class SchedulerStatsResponse(BaseModel):
    """Print scheduler and background dispatch statistics."""

    limit: int = Field(description="Concurrency ceiling")
    running: int = Field(description="Submissions in flight")
    queued: int = Field(description="Submissions waiting for a slot")
    peak_running: int = Field(description="Highest number of submissions seen in flight")
    submitted: int = Field(description="Work items submitted since startup")
    failed: int = Field(description="Work items that raised")
    background_tasks: int = Field(description="Detached order dispatches still running")
    orders_in_flight: list[str] = Field(default_factory=list, description="Orders being dispatched")


class ErrorDetail(BaseModel):
    """One problem behind an error, e.g. a failed attempt of a retried order."""

    loc: list[str] | None = Field(default=None, description="Where the problem is, e.g. ['attempt_id', '1001-1-1']")
    msg: str = Field(description="Human-readable error message")
    type: str = Field(description="Error type identifier")


class ErrorResponse(BaseModel):
    """Body of every error response produced by the API error handler."""

    error: str = Field(description="Error type, e.g. not_found or submission_failed")
    message: str = Field(description="Human-readable error description")
    details: list[ErrorDetail] | None = Field(default=None, description="Additional error details")
    request_id: str | None = Field(default=None, description="X-Request-ID of the failing request")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")

    @classmethod
    def from_exception(
        cls,
        error_type: str,
        message: str,
        details: list[dict[str, Any]] | None = None,
        request_id: str | None = None,
    ) -> "ErrorResponse":
        """Build an error body from an error type, message and raw detail dicts."""
        return cls(
            error=error_type,
            message=message,
            details=[
                ErrorDetail(loc=d.get("loc"), msg=d.get("msg", str(d)), type=d.get("type", "error"))
                for d in details
            ]
            if details
            else None,
            request_id=request_id,
        )
