"""Print job attempt storage.

The dispatch engine only talks to the JobRepository interface. Two backends
are provided: Supabase (the print_jobs table) for deployments and an
in-memory store for tests and local runs.

Each attempt owns exactly one row keyed by attempt_id, so concurrent
dispatch tasks never write to the same record.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Any

from supabase import PostgrestAPIError

from src.core.config import get_settings
from src.core.exceptions import DuplicateAttemptError
from src.core.supabase import PRINT_JOBS_TABLE, get_supabase_client
from src.models.print_job import PrintJobAttempt

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobRepository(ABC):
    """Storage contract for print job attempts."""

    @abstractmethod
    async def find_by_order(self, order_id: str) -> list[PrintJobAttempt]:
        """Get all attempts for an order, oldest first (empty when unknown)."""

    @abstractmethod
    async def find_by_attempt_id(self, attempt_id: str) -> PrintJobAttempt | None:
        """Get a single attempt."""

    @abstractmethod
    async def insert_pending(self, attempt: PrintJobAttempt) -> PrintJobAttempt:
        """Insert a new attempt in pending status.

        Raises:
            DuplicateAttemptError: If the attempt_id already exists.
        """

    @abstractmethod
    async def mark_sent(self, attempt_id: str, vendor_job_id: str) -> PrintJobAttempt | None:
        """Record a successful submission and clear any previous error."""

    @abstractmethod
    async def mark_failed(self, attempt_id: str, error_message: str) -> PrintJobAttempt | None:
        """Record a failed attempt and clear any previous vendor job id."""

    @abstractmethod
    async def reset_to_pending(self, attempt_ids: list[str]) -> int:
        """Put attempts back in pending status ahead of a re-dispatch."""

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> list[PrintJobAttempt]:
        """Get the most recently created attempts, newest first."""

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime) -> list[PrintJobAttempt]:
        """Get pending attempts last touched before the cutoff, oldest first."""

    async def check_connection(self) -> dict[str, Any]:
        """Check if the backing store is reachable."""
        return {"healthy": True}


class InMemoryJobRepository(JobRepository):
    """Thread-safe in-memory attempt store."""

    def __init__(self) -> None:
        self._rows: dict[str, PrintJobAttempt] = {}
        self._lock = Lock()

    async def find_by_order(self, order_id: str) -> list[PrintJobAttempt]:
        with self._lock:
            rows = [row for row in self._rows.values() if row["order_id"] == order_id]
            return [copy.deepcopy(row) for row in sorted(rows, key=lambda r: r["created_at"])]

    async def find_by_attempt_id(self, attempt_id: str) -> PrintJobAttempt | None:
        with self._lock:
            row = self._rows.get(attempt_id)
            return copy.deepcopy(row) if row else None

    async def insert_pending(self, attempt: PrintJobAttempt) -> PrintJobAttempt:
        now = _now()
        with self._lock:
            if attempt["attempt_id"] in self._rows:
                raise DuplicateAttemptError(attempt["attempt_id"])
            row = copy.deepcopy(attempt)
            row.update(
                {
                    "status": "pending",
                    "vendor_job_id": None,
                    "error_message": None,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            self._rows[row["attempt_id"]] = row
            return copy.deepcopy(row)

    def _update(self, attempt_id: str, changes: dict[str, Any]) -> PrintJobAttempt | None:
        with self._lock:
            row = self._rows.get(attempt_id)
            if row is None:
                return None
            row.update(changes)
            row["updated_at"] = _now()
            return copy.deepcopy(row)

    async def mark_sent(self, attempt_id: str, vendor_job_id: str) -> PrintJobAttempt | None:
        return self._update(
            attempt_id,
            {"status": "sent", "vendor_job_id": vendor_job_id, "error_message": None},
        )

    async def mark_failed(self, attempt_id: str, error_message: str) -> PrintJobAttempt | None:
        return self._update(
            attempt_id,
            {"status": "failed", "vendor_job_id": None, "error_message": error_message},
        )

    async def reset_to_pending(self, attempt_ids: list[str]) -> int:
        count = 0
        for attempt_id in attempt_ids:
            changes = {"status": "pending", "vendor_job_id": None, "error_message": None}
            if self._update(attempt_id, changes) is not None:
                count += 1
        return count

    async def list_recent(self, limit: int = 100) -> list[PrintJobAttempt]:
        with self._lock:
            rows = sorted(self._rows.values(), key=lambda r: r["created_at"], reverse=True)
            return [copy.deepcopy(row) for row in rows[:limit]]

    async def list_stale_pending(self, older_than: datetime) -> list[PrintJobAttempt]:
        with self._lock:
            rows = [
                row
                for row in self._rows.values()
                if row["status"] == "pending" and row["updated_at"] < older_than
            ]
            return [copy.deepcopy(row) for row in sorted(rows, key=lambda r: r["created_at"])]


class SupabaseJobRepository(JobRepository):
    """Attempt store backed by the Supabase print_jobs table."""

    def __init__(self) -> None:
        """Initialize repository with Supabase client."""
        self.client = get_supabase_client()

    def _table(self) -> Any:
        return self.client.table(PRINT_JOBS_TABLE)

    async def find_by_order(self, order_id: str) -> list[PrintJobAttempt]:
        response = (
            self._table()
            .select("*")
            .eq("order_id", order_id)
            .order("created_at")
            .execute()
        )
        return response.data or []

    async def find_by_attempt_id(self, attempt_id: str) -> PrintJobAttempt | None:
        response = (
            self._table()
            .select("*")
            .eq("attempt_id", attempt_id)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def insert_pending(self, attempt: PrintJobAttempt) -> PrintJobAttempt:
        row = {
            key: value
            for key, value in attempt.items()
            if key not in ("created_at", "updated_at")
        }
        row.update({"status": "pending", "vendor_job_id": None, "error_message": None})

        try:
            response = self._table().insert(row).execute()
        except PostgrestAPIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateAttemptError(attempt["attempt_id"]) from e
            raise

        return response.data[0]

    def _update(self, attempt_id: str, changes: dict[str, Any]) -> PrintJobAttempt | None:
        changes = {**changes, "updated_at": _now().isoformat()}
        response = self._table().update(changes).eq("attempt_id", attempt_id).execute()
        if not response.data:
            logger.warning("Attempt not found for update: %s", attempt_id)
            return None
        return response.data[0]

    async def mark_sent(self, attempt_id: str, vendor_job_id: str) -> PrintJobAttempt | None:
        return self._update(
            attempt_id,
            {"status": "sent", "vendor_job_id": vendor_job_id, "error_message": None},
        )

    async def mark_failed(self, attempt_id: str, error_message: str) -> PrintJobAttempt | None:
        return self._update(
            attempt_id,
            {"status": "failed", "vendor_job_id": None, "error_message": error_message},
        )

    async def reset_to_pending(self, attempt_ids: list[str]) -> int:
        if not attempt_ids:
            return 0
        response = (
            self._table()
            .update(
                {
                    "status": "pending",
                    "vendor_job_id": None,
                    "error_message": None,
                    "updated_at": _now().isoformat(),
                }
            )
            .in_("attempt_id", attempt_ids)
            .execute()
        )
        return len(response.data) if response.data else 0

    async def list_recent(self, limit: int = 100) -> list[PrintJobAttempt]:
        response = (
            self._table()
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []

    async def list_stale_pending(self, older_than: datetime) -> list[PrintJobAttempt]:
        response = (
            self._table()
            .select("*")
            .eq("status", "pending")
            .lt("updated_at", older_than.isoformat())
            .order("created_at")
            .execute()
        )
        return response.data or []

    async def check_connection(self) -> dict[str, Any]:
        try:
            self._table().select("attempt_id").limit(1).execute()
            return {"healthy": True}
        except Exception as e:
            return {"healthy": False, "error": str(e)}


@lru_cache
def get_job_repository() -> JobRepository:
    """Get the cached job repository for the configured backend.

    Returns:
        JobRepository: Supabase or in-memory repository.

    Note:
        Call get_job_repository.cache_clear() to switch backends or start
        from an empty in-memory store.
    """
    settings = get_settings()
    if settings.job_store == "memory":
        logger.info("Using in-memory job repository")
        return InMemoryJobRepository()
    return SupabaseJobRepository()
