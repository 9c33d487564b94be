"""Print job Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.print_job import AttemptStatus

class PrintJobResponse(BaseModel):
    """Schema for a single print job attempt."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    attempt_id: str = Field(description="Deterministic attempt identifier")
    order_id: str = Field(description="Owning order's display number without '#'")
    product_name: str = Field(description="Product title at expansion time")
    variant_title: str | None = Field(default=None, description="Variant title")
    sku: str | None = Field(default=None, description="SKU")
    quantity: int = Field(description="Line item quantity")
    unit: int = Field(description="Unit number within the line item (1-based)")
    price: str | None = Field(default=None, description="Unit price")
    title: str = Field(description="Print job title sent to PrintNode")
    status: AttemptStatus = Field(description="Attempt status")
    vendor_job_id: str | None = Field(default=None, description="PrintNode job ID once sent")
    error_message: str | None = Field(default=None, description="Last error once failed")
    has_retry_data: bool = Field(default=False, description="Whether a label snapshot is stored")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PrintJobResponse":
        """Build a response from a repository row."""
        return cls(**row, has_retry_data=bool(row.get("retry_snapshot")))


class PrintJobListResponse(BaseModel):
    """Schema for print job list responses."""

    items: list[PrintJobResponse] = Field(description="Attempts, newest first")
    count: int = Field(description="Number of attempts returned")


class AttemptResult(BaseModel):
    """Outcome of one attempt within a dispatch pass."""

    attempt_id: str = Field(description="Attempt identifier")
    status: AttemptStatus | Literal["skipped"] = Field(description="Final status for this pass")
    vendor_job_id: str | None = Field(default=None, description="PrintNode job ID")
    error_message: str | None = Field(default=None, description="Error message")


class DispatchSummary(BaseModel):
    """Aggregate result of expanding and dispatching an order."""

    order_id: str = Field(description="Order display number without '#'")
    printed: int = Field(default=0, description="Attempts that reached sent")
    failed: int = Field(default=0, description="Attempts that reached failed")
    skipped: int = Field(default=0, description="Attempts skipped as duplicates")
    results: list[AttemptResult] = Field(default_factory=list, description="Per-attempt results")


class WebhookAck(BaseModel):
    """Response to the order webhook."""

    success: bool = Field(description="Whether the request was handled")
    message: str = Field(description="Human-readable outcome")


class RetryJobResponse(BaseModel):
    """Response to a single attempt retry."""

    success: bool = Field(default=True, description="Whether the retry printed")
    message: str = Field(description="Human-readable outcome")
    job: PrintJobResponse = Field(description="Updated attempt")


class RetryOrderResponse(BaseModel):
    """Response to a whole-order retry."""

    success: bool = Field(default=True, description="Whether every retried unit printed")
    message: str = Field(description="Human-readable outcome")
    summary: DispatchSummary = Field(description="Dispatch summary for the retried units")


class PrintNodeEventResponse(BaseModel):
    """A stored PrintNode webhook event."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    event_type: str | None = Field(default=None, description="PrintNode event name")
    content: dict[str, Any] = Field(description="Raw event body")
    received_at: datetime = Field(description="When the event was received")


class PrintNodeEventListResponse(BaseModel):
    """Schema for PrintNode event list responses."""

    items: list[PrintNodeEventResponse] = Field(description="Events, newest first")
    webhook_configured: bool = Field(description="Whether a webhook secret is set")


class SweepResponse(BaseModel):
    """Response from the stale pending attempt sweep."""

    success: bool = Field(default=True, description="Whether the sweep ran")
    message: str = Field(description="Human-readable outcome")
    resumed: int = Field(default=0, description="Stale attempts re-dispatched")
    summaries: list[DispatchSummary] = Field(default_factory=list, description="Per-order results")
