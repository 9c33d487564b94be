"""Bounded task scheduler and supervisor for detached background work."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BoundedScheduler:
    """Run async work items with a fixed concurrency ceiling.

    Submissions are never rejected. At most ``limit`` tasks run at once and
    the rest wait on a semaphore, which wakes waiters in the order they
    arrived. A failing task only affects the caller awaiting it. There is no
    retry or backoff here; callers own that.
    """

    def __init__(self, limit: int = 3) -> None:
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        self.limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._running = 0
        self._queued = 0
        self._peak = 0
        self._submitted = 0
        self._failed = 0

    def submit(self, task_factory: Callable[[], Awaitable[T]], name: str | None = None) -> asyncio.Task[T]:
        """Schedule a work item.

        Args:
            task_factory: Zero-argument callable returning the awaitable to run.
                It is only called once a slot is free.
            name: Optional task name for debugging.

        Returns:
            asyncio.Task: Resolves to the work item's result or raises its error.
        """
        self._submitted += 1
        self._queued += 1
        return asyncio.create_task(self._run(task_factory), name=name)

    async def _run(self, task_factory: Callable[[], Awaitable[T]]) -> T:
        try:
            await self._semaphore.acquire()
        finally:
            self._queued -= 1

        self._running += 1
        self._peak = max(self._peak, self._running)
        try:
            return await task_factory()
        except Exception:
            self._failed += 1
            raise
        finally:
            self._running -= 1
            self._semaphore.release()

    def stats(self) -> dict[str, int]:
        """Get scheduler statistics for monitoring."""
        return {
            "limit": self.limit,
            "running": self._running,
            "queued": self._queued,
            "peak_running": self._peak,
            "submitted": self._submitted,
            "failed": self._failed,
        }


class TaskSupervisor:
    """Own fire-and-forget tasks that outlive the request that started them."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Start a detached task and keep a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s crashed: %s",
                task.get_name(),
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def active_count(self) -> int:
        """Number of detached tasks still running."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every detached task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Drain outstanding tasks, cancelling whatever is left after the timeout."""
        if not self._tasks:
            return

        logger.info("Waiting for %d background task(s) to complete...", len(self._tasks))
        try:
            await asyncio.wait_for(self.wait_idle(), timeout=timeout)
        except asyncio.TimeoutError:
            remaining = list(self._tasks)
            logger.warning("Cancelling %d background task(s) that did not finish in time", len(remaining))
            for task in remaining:
                task.cancel()
            await asyncio.gather(*remaining, return_exceptions=True)


# Global singleton instances
_scheduler: BoundedScheduler | None = None
_supervisor: TaskSupervisor | None = None


def get_scheduler() -> BoundedScheduler:
    """Get or create the global print scheduler."""
    global _scheduler
    if _scheduler is None:
        from src.core.config import get_settings

        _scheduler = BoundedScheduler(get_settings().print_concurrency)
    return _scheduler


def get_task_supervisor() -> TaskSupervisor:
    """Get or create the global background task supervisor."""
    global _supervisor
    if _supervisor is None:
        _supervisor = TaskSupervisor()
    return _supervisor


async def init_scheduler() -> BoundedScheduler:
    """Create fresh scheduler and supervisor instances. Call at app startup."""
    global _scheduler, _supervisor
    _scheduler = None
    _supervisor = None
    scheduler = get_scheduler()
    get_task_supervisor()
    logger.info("Print scheduler ready (concurrency=%d)", scheduler.limit)
    return scheduler


async def shutdown_scheduler(timeout: float = 30.0) -> None:
    """Drain background work and drop the singletons. Call at app shutdown."""
    global _scheduler, _supervisor
    if _supervisor:
        await _supervisor.shutdown(timeout=timeout)
    _scheduler = None
    _supervisor = None
