"""Inbound order webhook Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LineItemPayload(BaseModel):
    """A single line item as sent by the store's order webhook."""

    model_config = ConfigDict(extra="allow")

    id: int | str | None = Field(default=None, description="Store line item ID")
    title: str | None = Field(default=None, description="Product title")
    variant_title: str | None = Field(default=None, description="Variant title")
    sku: str | None = Field(default=None, description="Stock keeping unit")
    quantity: int = Field(ge=1, description="Units ordered")
    price: str | float | None = Field(default=None, description="Unit price")


class OrderPayload(BaseModel):
    """Order webhook body.

    Only the fields the print relay reads are declared. Anything else in the
    payload is ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: int | str | None = Field(default=None, description="Store order ID")
    name: str | None = Field(default=None, description="Display number, e.g. #1001")
    order_number: int | str | None = Field(default=None, description="Numeric order number")
    line_items: list[LineItemPayload] = Field(description="Ordered line items")
    note: str | None = Field(default=None, description="Free-text order note")
    customer: dict[str, Any] | None = Field(default=None, description="Customer details")
    shipping_address: dict[str, Any] | None = Field(default=None, description="Shipping address")
    currency: str | None = Field(default=None, description="Currency code")

    @model_validator(mode="after")
    def require_order_number(self) -> "OrderPayload":
        """Reject payloads with no usable order number."""
        if not self.display_number:
            raise ValueError("Order has no name or order_number")
        return self

    @property
    def display_number(self) -> str:
        """Order number as shown to the customer, e.g. '#1001'."""
        if self.name and self.name.strip():
            return self.name.strip()
        if self.order_number is not None and str(self.order_number).strip():
            return f"#{str(self.order_number).strip()}"
        return ""

    @property
    def order_key(self) -> str:
        """Display number without the leading '#', used as the stored order_id."""
        return self.display_number.lstrip("#")

    @property
    def customer_name(self) -> str | None:
        """Customer or shipping name, whichever is present."""
        for source in (self.customer, self.shipping_address):
            if not source:
                continue
            full = " ".join(
                part for part in (source.get("first_name"), source.get("last_name")) if part
            )
            if full:
                return full
            if source.get("name"):
                return str(source["name"])
        return None
