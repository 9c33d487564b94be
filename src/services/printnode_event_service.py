"""Audit log of PrintNode webhook events."""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Any

from src.core.config import get_settings
from src.core.supabase import PRINTNODE_EVENTS_TABLE, get_supabase_client
from src.models.printnode_event import PrintNodeEvent

logger = logging.getLogger(__name__)


def _to_rows(events: list[Any]) -> list[PrintNodeEvent]:
    received_at = datetime.now(timezone.utc)
    rows: list[PrintNodeEvent] = []
    for event in events:
        content = event if isinstance(event, dict) else {"value": event}
        rows.append(
            {
                "event_type": content.get("event"),
                "content": content,
                "received_at": received_at,
            }
        )
    return rows


class PrintNodeEventService:
    """Store PrintNode events verbatim for status display.

    Uses the Supabase printnode_events table, or a process-local list when
    the job store is in memory.
    """

    def __init__(self, use_memory: bool | None = None) -> None:
        if use_memory is None:
            use_memory = get_settings().job_store == "memory"
        self.client = None if use_memory else get_supabase_client()
        self._events: list[PrintNodeEvent] = []
        self._lock = Lock()

    async def record_events(self, events: list[Any]) -> int:
        """Persist a batch of webhook events.

        Args:
            events: Event objects as posted by PrintNode.

        Returns:
            int: Number of events stored.
        """
        rows = _to_rows(events)
        if not rows:
            return 0

        if self.client is None:
            with self._lock:
                self._events.extend(rows)
        else:
            payload = [{**row, "received_at": row["received_at"].isoformat()} for row in rows]
            self.client.table(PRINTNODE_EVENTS_TABLE).insert(payload).execute()

        logger.info("Stored %d PrintNode event(s)", len(rows))
        return len(rows)

    async def list_recent(self, limit: int = 100) -> list[PrintNodeEvent]:
        """Get the most recently received events, newest first."""
        if self.client is None:
            with self._lock:
                return list(reversed(self._events))[:limit]

        response = (
            self.client.table(PRINTNODE_EVENTS_TABLE)
            .select("*")
            .order("received_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or []


@lru_cache
def get_printnode_event_service() -> PrintNodeEventService:
    """Get the cached event service for the configured backend."""
    return PrintNodeEventService()
