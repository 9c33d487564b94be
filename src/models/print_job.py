"""Print job attempt type definitions for database operations."""

from datetime import datetime
from typing import Any, Literal, TypedDict


# Attempt status values matching the print_jobs.status check constraint
AttemptStatus = Literal["pending", "sent", "failed"]


class OrderInfo(TypedDict, total=False):
    """Order-level fields printed on a label."""

    order_number: str
    order_ref: str | None
    note: str | None
    customer_name: str | None
    currency: str | None


class RetrySnapshot(TypedDict):
    """Frozen label inputs captured when the order was first expanded.

    Stored in the retry_snapshot JSONB column and never modified afterwards.
    """

    item: dict[str, Any]
    order_info: OrderInfo


class PrintJobAttempt(TypedDict):
    """print_jobs table row representation.

    One row per physical label: one unit of one line item.
    """

    attempt_id: str
    order_id: str
    product_name: str
    variant_title: str | None
    sku: str | None
    quantity: int
    unit: int
    price: str | None
    title: str
    status: AttemptStatus
    vendor_job_id: str | None
    error_message: str | None
    retry_snapshot: RetrySnapshot | None
    created_at: datetime | str
    updated_at: datetime | str
