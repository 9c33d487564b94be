"""Order webhook intake with idempotency gating."""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from src.core.exceptions import MalformedOrderError
from src.core.scheduler import TaskSupervisor, get_task_supervisor
from src.schemas.order import OrderPayload
from src.services.dispatch_service import DispatchService, claim_order, release_order
from src.services.job_repository import JobRepository

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    """Outcome of handing an order webhook to the intake."""

    order_id: str
    accepted: bool
    duplicate: bool = False

    @property
    def message(self) -> str:
        """Message returned to the webhook sender."""
        if self.duplicate:
            return "Duplicate ignored."
        return "Order received and queued for printing."


def verify_webhook_hmac(body: bytes, signature: str | None, secret: str) -> bool:
    """Check a Shopify-style base64 HMAC-SHA256 signature of the raw body."""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected.encode(), signature.strip().encode())


def parse_order(payload: Any) -> OrderPayload:
    """Validate a raw webhook body.

    Raises:
        MalformedOrderError: If the order number or line items are missing or invalid.
    """
    if not isinstance(payload, dict):
        raise MalformedOrderError("Order payload must be a JSON object")
    try:
        return OrderPayload.model_validate(payload)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'order'}: {err['msg']}"
            for err in e.errors()
        )
        raise MalformedOrderError(f"Malformed order: {problems}") from e


class OrderIntakeService:
    """Accept order webhooks and hand new orders to background dispatch.

    The webhook sender gets its answer as soon as the idempotency check is
    done. Printing runs detached, so its failures only show up in the jobs
    listing and retry endpoints.
    """

    def __init__(
        self,
        dispatch_service: DispatchService,
        supervisor: TaskSupervisor | None = None,
    ) -> None:
        self.dispatch_service = dispatch_service
        self.repository: JobRepository = dispatch_service.repository
        self.supervisor = supervisor or get_task_supervisor()

    async def accept(self, payload: Any) -> IntakeResult:
        """Validate an order, gate on idempotency and queue it for printing.

        Args:
            payload: Parsed JSON body of the order webhook.

        Returns:
            IntakeResult: Whether the order was queued or ignored as a duplicate.

        Raises:
            MalformedOrderError: If the payload is not a usable order.
        """
        order = parse_order(payload)
        order_id = order.order_key
        logger.info("Webhook received for order %s", order.display_number)

        existing = await self.repository.find_by_order(order_id)
        if existing:
            logger.info("Order %s already has %d attempt(s), ignoring duplicate", order_id, len(existing))
            return IntakeResult(order_id=order_id, accepted=False, duplicate=True)

        if not claim_order(order_id):
            logger.info("Order %s is already being dispatched, ignoring duplicate", order_id)
            return IntakeResult(order_id=order_id, accepted=False, duplicate=True)

        self.supervisor.spawn(self._run_dispatch(order), name=f"dispatch-{order_id}")
        return IntakeResult(order_id=order_id, accepted=True)

    async def _run_dispatch(self, order: OrderPayload) -> None:
        order_id = order.order_key
        try:
            summary = await self.dispatch_service.dispatch_order(order)
            if summary.failed:
                logger.warning(
                    "Order %s finished with %d failed label(s); retry via /api/retry-order/%s",
                    order_id,
                    summary.failed,
                    order_id,
                )
        finally:
            release_order(order_id)
