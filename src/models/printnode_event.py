"""PrintNode webhook event type definitions."""

from datetime import datetime
from typing import Any, TypedDict


class PrintNodeEvent(TypedDict):
    """printnode_events table row representation.

    The raw event is kept verbatim in content for audit and status display.
    """

    event_type: str | None
    content: dict[str, Any]
    received_at: datetime | str
