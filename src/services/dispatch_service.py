"""Order expansion and print dispatch.

An order with line items of quantity q1..qn becomes q1 + ... + qn attempts,
one per physical label. Every attempt is stored as pending before any label
is rendered, then the render and submit work for each unit is issued to the
bounded scheduler in line item order, unit order within a line item.
Completion order is not guaranteed; the repository holds the final state.

A render or submission failure only marks its own attempt failed. Sibling
units and the rest of the order carry on.
"""

from __future__ import annotations

import asyncio
import logging

from src.core.config import get_settings
from src.core.exceptions import DuplicateAttemptError, RenderError, SubmissionError
from src.core.printnode import PrintNodeClient, get_print_client
from src.core.scheduler import BoundedScheduler, get_scheduler
from src.models.print_job import OrderInfo, PrintJobAttempt
from src.schemas.order import LineItemPayload, OrderPayload
from src.schemas.print_job import AttemptResult, DispatchSummary
from src.services.job_repository import JobRepository, get_job_repository
from src.services.label_renderer import LabelRenderer, get_label_renderer

logger = logging.getLogger(__name__)

# Orders whose expansion is running in this process
_inflight_orders: set[str] = set()


def claim_order(order_id: str) -> bool:
    """Mark an order as being dispatched. Returns False if it already is."""
    if order_id in _inflight_orders:
        return False
    _inflight_orders.add(order_id)
    return True


def release_order(order_id: str) -> None:
    """Clear the in-flight mark for an order."""
    _inflight_orders.discard(order_id)


def in_flight_orders() -> list[str]:
    """Orders currently being dispatched, sorted."""
    return sorted(_inflight_orders)


def normalize_order_id(order_id: str) -> str:
    """Strip whitespace and a leading '#' so '#1001' and '1001' match."""
    return order_id.strip().lstrip("#")


def line_item_key(item: LineItemPayload, index: int) -> str:
    """Stable key for a line item: its store ID, else its zero-based position."""
    if item.id is not None and str(item.id).strip():
        return str(item.id).strip()
    return str(index)


def derive_attempt_id(order_id: str, item_key: str, unit: int) -> str:
    """Build the deterministic attempt id for one unit of one line item."""
    return f"{normalize_order_id(order_id)}-{item_key}-{unit}"


def format_title(
    order_number: str,
    product_title: str | None,
    variant_title: str | None,
    unit: int,
    quantity: int,
) -> str:
    """Print job title, e.g. '#1001 - Iced Latte / Large (1/3)'."""
    name = product_title or "N/A"
    if variant_title:
        name = f"{name} / {variant_title}"
    return f"{order_number} - {name} ({unit}/{quantity})"


def build_order_info(order: OrderPayload) -> OrderInfo:
    """Order fields needed to rebuild a label without the live order."""
    return {
        "order_number": order.display_number,
        "order_ref": str(order.id) if order.id is not None else None,
        "note": order.note,
        "customer_name": order.customer_name,
        "currency": order.currency,
    }


def expand_order(order: OrderPayload) -> list[PrintJobAttempt]:
    """Expand an order into one attempt per line item unit.

    Args:
        order: Validated order payload.

    Returns:
        list[PrintJobAttempt]: Attempts in line item order, then unit order.
    """
    order_id = order.order_key
    order_info = build_order_info(order)
    attempts: list[PrintJobAttempt] = []

    for index, item in enumerate(order.line_items):
        key = line_item_key(item, index)
        item_snapshot = item.model_dump(mode="json")
        price = str(item.price) if item.price is not None else None

        for unit in range(1, item.quantity + 1):
            attempts.append(
                {
                    "attempt_id": derive_attempt_id(order_id, key, unit),
                    "order_id": order_id,
                    "product_name": item.title or "N/A",
                    "variant_title": item.variant_title,
                    "sku": item.sku,
                    "quantity": item.quantity,
                    "unit": unit,
                    "price": price,
                    "title": format_title(
                        order.display_number, item.title, item.variant_title, unit, item.quantity
                    ),
                    "status": "pending",
                    "vendor_job_id": None,
                    "error_message": None,
                    "retry_snapshot": {"item": item_snapshot, "order_info": dict(order_info)},
                }
            )

    return attempts


def _pacing_group(attempt_id: str) -> str:
    """Attempts sharing everything but the unit suffix belong to one line item."""
    return attempt_id.rsplit("-", 1)[0]


class DispatchService:
    """Service that renders and submits print attempts."""

    def __init__(
        self,
        repository: JobRepository | None = None,
        print_client: PrintNodeClient | None = None,
        renderer: LabelRenderer | None = None,
        scheduler: BoundedScheduler | None = None,
        pacing_seconds: float | None = None,
    ) -> None:
        """Initialize dispatch service with its collaborators.

        Any collaborator left as None is taken from the process-wide singleton.
        """
        self.repository = repository or get_job_repository()
        self.print_client = print_client or get_print_client()
        self.renderer = renderer or get_label_renderer()
        self.scheduler = scheduler or get_scheduler()
        if pacing_seconds is None:
            pacing_seconds = get_settings().print_pacing_seconds
        self.pacing_seconds = pacing_seconds

    async def dispatch_order(self, order: OrderPayload) -> DispatchSummary:
        """Expand an order, persist its attempts and print every unit.

        Args:
            order: Validated order payload.

        Returns:
            DispatchSummary: Printed/failed/skipped counts and per-attempt results.
        """
        order_id = order.order_key
        attempts = expand_order(order)
        logger.info("Expanding order %s into %d print attempt(s)", order_id, len(attempts))

        stored: list[PrintJobAttempt] = []
        skipped: list[AttemptResult] = []
        for attempt in attempts:
            try:
                stored.append(await self.repository.insert_pending(attempt))
            except DuplicateAttemptError:
                logger.warning("Attempt %s already exists, skipping", attempt["attempt_id"])
                skipped.append(AttemptResult(attempt_id=attempt["attempt_id"], status="skipped"))

        summary = await self.dispatch_attempts(order_id, stored)
        summary.skipped = len(skipped)
        summary.results = skipped + summary.results
        return summary

    async def dispatch_attempts(self, order_id: str, attempts: list[PrintJobAttempt]) -> DispatchSummary:
        """Render and submit stored attempts from their snapshots.

        Used for first dispatch as well as retries and the stale pending sweep.

        Args:
            order_id: Owning order, for logging and the summary.
            attempts: Stored attempts, in the order they should be issued.

        Returns:
            DispatchSummary: Result of this pass.
        """
        tasks: list[asyncio.Task[AttemptResult]] = []
        previous_group: str | None = None

        for attempt in attempts:
            group = _pacing_group(attempt["attempt_id"])
            if group == previous_group and self.pacing_seconds > 0:
                await asyncio.sleep(self.pacing_seconds)
            previous_group = group

            tasks.append(
                self.scheduler.submit(
                    lambda attempt=attempt: self.print_attempt(attempt),
                    name=f"print-{attempt['attempt_id']}",
                )
            )

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        summary = DispatchSummary(order_id=order_id)
        for attempt, outcome in zip(attempts, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Attempt %s ended without a recorded status: %s",
                    attempt["attempt_id"],
                    outcome,
                )
                outcome = AttemptResult(
                    attempt_id=attempt["attempt_id"],
                    status="failed",
                    error_message=f"{type(outcome).__name__}: {outcome}",
                )
            if outcome.status == "sent":
                summary.printed += 1
            else:
                summary.failed += 1
            summary.results.append(outcome)

        logger.info(
            "Order %s dispatch finished: printed=%d failed=%d",
            order_id,
            summary.printed,
            summary.failed,
        )
        return summary

    async def print_attempt(self, attempt: PrintJobAttempt) -> AttemptResult:
        """Render and submit one attempt and record the outcome.

        Render and submission errors are recorded as failed and returned, never
        raised. Repository errors propagate.
        """
        attempt_id = attempt["attempt_id"]
        snapshot = attempt.get("retry_snapshot")

        try:
            if not snapshot:
                raise RenderError("No retry data stored for this attempt")
            pdf_bytes = await self.renderer.render(snapshot["item"], snapshot["order_info"])
            vendor_job_id = await self.print_client.submit(pdf_bytes, attempt["title"])
        except (RenderError, SubmissionError) as e:
            return await self._record_failure(attempt_id, str(e))
        except Exception as e:
            logger.exception("Unexpected error printing attempt %s", attempt_id)
            return await self._record_failure(attempt_id, f"{type(e).__name__}: {e}")

        await self.repository.mark_sent(attempt_id, vendor_job_id)
        logger.info("Attempt %s sent as PrintNode job %s", attempt_id, vendor_job_id)
        return AttemptResult(attempt_id=attempt_id, status="sent", vendor_job_id=vendor_job_id)

    async def _record_failure(self, attempt_id: str, message: str) -> AttemptResult:
        await self.repository.mark_failed(attempt_id, message)
        logger.warning("Attempt %s failed: %s", attempt_id, message)
        return AttemptResult(attempt_id=attempt_id, status="failed", error_message=message)

    async def retry_one(self, attempt: PrintJobAttempt) -> AttemptResult:
        """Re-print a single stored attempt through the scheduler."""
        task = self.scheduler.submit(
            lambda: self.print_attempt(attempt),
            name=f"retry-{attempt['attempt_id']}",
        )
        return await task
