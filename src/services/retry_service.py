"""Re-printing of failed attempts and orders.

Retries always update the existing attempt row in place: no new rows are
created, so the attempt_id stays unique per label and the order's row count
never grows. The stored retry_snapshot is read, never rewritten, so a retry
can be repeated any number of times.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone

from src.core.config import get_settings
from src.core.exceptions import (
    AttemptNotFoundError,
    NoRetryDataError,
    OrderInFlightError,
    OrderNotFoundError,
    SubmissionError,
)
from src.models.print_job import PrintJobAttempt
from src.schemas.print_job import AttemptResult, DispatchSummary
from src.services.dispatch_service import (
    DispatchService,
    claim_order,
    normalize_order_id,
    release_order,
)

logger = logging.getLogger(__name__)


class RetryService:
    """Service for re-submitting stored attempts."""

    def __init__(self, dispatch_service: DispatchService) -> None:
        self.dispatch_service = dispatch_service
        self.repository = dispatch_service.repository

    async def retry_attempt(self, attempt_id: str) -> PrintJobAttempt:
        """Re-print one attempt from its stored snapshot.

        Args:
            attempt_id: Attempt to retry.

        Returns:
            PrintJobAttempt: The updated row, now sent.

        Raises:
            AttemptNotFoundError: If the attempt does not exist.
            NoRetryDataError: If no snapshot was stored.
            OrderInFlightError: If the attempt is pending or its order is
                being dispatched or retried. Stale pending rows are left to
                the pending sweep.
            SubmissionError: If the label failed again. The row is failed and
                keeps its snapshot.
        """
        attempt = await self.repository.find_by_attempt_id(attempt_id)
        if not attempt:
            raise AttemptNotFoundError(f"Attempt {attempt_id} not found")
        if not attempt.get("retry_snapshot"):
            raise NoRetryDataError(f"No retry data stored for attempt {attempt_id}")
        if attempt["status"] == "pending":
            raise OrderInFlightError(f"Attempt {attempt_id} is still being printed")

        order_id = attempt["order_id"]
        if not claim_order(order_id):
            raise OrderInFlightError(f"Order {order_id} is still being printed")

        try:
            logger.info("Retrying attempt %s (was %s)", attempt_id, attempt["status"])
            await self.repository.reset_to_pending([attempt_id])
            result = await self.dispatch_service.retry_one(attempt)
        finally:
            release_order(order_id)

        if result.status != "sent":
            raise SubmissionError(result.error_message or "Retry failed")

        updated = await self.repository.find_by_attempt_id(attempt_id)
        return updated or attempt

    async def retry_order(self, order_id: str, include_sent: bool = False) -> DispatchSummary:
        """Re-print an order's attempts from their stored snapshots.

        The live order is never re-fetched. By default only attempts that are
        not sent are retried, so labels that already printed are not printed
        twice; include_sent reprints the whole order.

        Args:
            order_id: Order display number, with or without '#'.
            include_sent: Also reprint attempts that already reached sent.

        Returns:
            DispatchSummary: Result of the retry pass.

        Raises:
            OrderNotFoundError: If the order has no attempts.
            OrderInFlightError: If the order is still being dispatched.
            NoRetryDataError: If none of the targeted attempts has a snapshot.
        """
        order_id = normalize_order_id(order_id)
        attempts = await self.repository.find_by_order(order_id)
        if not attempts:
            raise OrderNotFoundError(f"Order {order_id} not found")

        targets = [a for a in attempts if include_sent or a["status"] != "sent"]
        if not targets:
            logger.info("Order %s has nothing to retry", order_id)
            return DispatchSummary(order_id=order_id)

        retriable = [a for a in targets if a.get("retry_snapshot")]
        if not retriable:
            raise NoRetryDataError(f"No retry data stored for order {order_id}")

        if not claim_order(order_id):
            raise OrderInFlightError(f"Order {order_id} is still being printed")

        try:
            logger.info(
                "Retrying %d attempt(s) of order %s (include_sent=%s)",
                len(retriable),
                order_id,
                include_sent,
            )
            await self.repository.reset_to_pending([a["attempt_id"] for a in retriable])
            summary = await self.dispatch_service.dispatch_attempts(order_id, retriable)
        finally:
            release_order(order_id)

        for attempt in targets:
            if not attempt.get("retry_snapshot"):
                summary.skipped += 1
                summary.results.append(
                    AttemptResult(
                        attempt_id=attempt["attempt_id"],
                        status="skipped",
                        error_message="No retry data stored",
                    )
                )
        return summary

    async def resume_stale_pending(self) -> list[DispatchSummary]:
        """Re-dispatch attempts left pending, e.g. by a crash mid-order.

        Returns:
            list[DispatchSummary]: One summary per resumed order.
        """
        settings = get_settings()
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=settings.stale_pending_seconds)
        stale = await self.repository.list_stale_pending(cutoff)

        by_order: dict[str, list[PrintJobAttempt]] = defaultdict(list)
        for attempt in stale:
            by_order[attempt["order_id"]].append(attempt)

        summaries = []
        for order_id, attempts in by_order.items():
            if not claim_order(order_id):
                logger.debug("Order %s is in flight, not resuming", order_id)
                continue
            try:
                logger.info("Resuming %d stale pending attempt(s) of order %s", len(attempts), order_id)
                summaries.append(await self.dispatch_service.dispatch_attempts(order_id, attempts))
            finally:
                release_order(order_id)

        return summaries
