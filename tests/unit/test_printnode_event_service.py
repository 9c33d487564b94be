"""Unit tests for the PrintNode event log."""

from unittest.mock import MagicMock, patch

import pytest

from src.services.printnode_event_service import PrintNodeEventService


class TestInMemoryEventLog:
    """Tests for the in-memory event log."""

    @pytest.mark.asyncio
    async def test_records_and_lists_newest_first(self) -> None:
        """Test that events are stored verbatim and listed newest first."""
        service = PrintNodeEventService(use_memory=True)

        stored = await service.record_events(
            [
                {"event": "print_job.state_change", "id": 1},
                {"event": "print_job.state_change", "id": 2},
            ]
        )

        events = await service.list_recent()
        assert stored == 2
        assert [e["content"]["id"] for e in events] == [2, 1]
        assert events[0]["event_type"] == "print_job.state_change"

    @pytest.mark.asyncio
    async def test_non_object_events_are_wrapped(self) -> None:
        """Test that scalar events are kept under a value key."""
        service = PrintNodeEventService(use_memory=True)

        await service.record_events(["ping"])

        events = await service.list_recent()
        assert events[0]["content"] == {"value": "ping"}
        assert events[0]["event_type"] is None

    @pytest.mark.asyncio
    async def test_empty_batch(self) -> None:
        """Test that an empty batch stores nothing."""
        service = PrintNodeEventService(use_memory=True)

        assert await service.record_events([]) == 0


class TestSupabaseEventLog:
    """Tests for the Supabase-backed event log."""

    @pytest.mark.asyncio
    @patch("src.services.printnode_event_service.get_supabase_client")
    async def test_inserts_into_events_table(self, mock_get_client: MagicMock) -> None:
        """Test that events are inserted with ISO timestamps."""
        client = MagicMock()
        mock_get_client.return_value = client

        service = PrintNodeEventService(use_memory=False)
        await service.record_events([{"event": "print_job.state_change"}])

        client.table.assert_called_with("printnode_events")
        rows = client.table.return_value.insert.call_args[0][0]
        assert rows[0]["event_type"] == "print_job.state_change"
        assert isinstance(rows[0]["received_at"], str)
