"""Unit tests for the retry service."""

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio

from src.core.exceptions import (
    AttemptNotFoundError,
    NoRetryDataError,
    OrderInFlightError,
    OrderNotFoundError,
    SubmissionError,
)
from src.core.scheduler import BoundedScheduler
from src.schemas.order import OrderPayload
from src.services.dispatch_service import (
    DispatchService,
    claim_order,
    expand_order,
    in_flight_orders,
    release_order,
)
from src.services.job_repository import InMemoryJobRepository
from src.services.retry_service import RetryService
from tests.conftest import FakePrintClient, FakeRenderer

FAILING_TITLE = "#1002 - A / Large (1/2)"


@pytest_asyncio.fixture
async def failed_order(
    dispatch_service: DispatchService,
    print_client: FakePrintClient,
    make_order: Callable[..., dict[str, Any]],
) -> OrderPayload:
    """Dispatch order #1002 with its first A unit failing, then heal the printer."""
    print_client.fail_titles = {FAILING_TITLE}
    order = OrderPayload.model_validate(make_order("#1002", ("A", 2), ("B", 1)))
    await dispatch_service.dispatch_order(order)
    print_client.fail_titles = set()
    return order


class TestRetryAttempt:
    """Tests for RetryService.retry_attempt."""

    @pytest.mark.asyncio
    async def test_retry_updates_row_in_place(
        self,
        failed_order: OrderPayload,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
    ) -> None:
        """Test that a successful retry flips the same row to sent."""
        before = await repository.find_by_attempt_id("1002-466157049-1")
        service = RetryService(dispatch_service)

        row = await service.retry_attempt("1002-466157049-1")

        assert row["status"] == "sent"
        assert row["error_message"] is None
        assert row["vendor_job_id"]
        assert row["retry_snapshot"] == before["retry_snapshot"]
        assert len(await repository.find_by_order("1002")) == 3

    @pytest.mark.asyncio
    async def test_retry_failure_raises_and_keeps_snapshot(
        self,
        failed_order: OrderPayload,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
        print_client: FakePrintClient,
    ) -> None:
        """Test that repeated failures keep the row failed and retriable until one succeeds."""
        snapshot = (await repository.find_by_attempt_id("1002-466157049-1"))["retry_snapshot"]
        print_client.fail_titles = {FAILING_TITLE}
        service = RetryService(dispatch_service)

        for _ in range(3):
            with pytest.raises(SubmissionError):
                await service.retry_attempt("1002-466157049-1")

            row = await repository.find_by_attempt_id("1002-466157049-1")
            assert row["status"] == "failed"
            assert row["retry_snapshot"] == snapshot

        print_client.fail_titles = set()
        row = await service.retry_attempt("1002-466157049-1")

        assert row["status"] == "sent"
        assert row["vendor_job_id"]
        assert row["retry_snapshot"] == snapshot
        assert len(await repository.find_by_order("1002")) == 3

    @pytest.mark.asyncio
    async def test_pending_attempt_of_running_dispatch_is_refused(
        self,
        repository: InMemoryJobRepository,
        renderer: FakeRenderer,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that a unit still queued in a dispatch is not printed a second time."""
        print_client = FakePrintClient(delay=0.2)
        dispatch_service = DispatchService(
            repository=repository,
            print_client=print_client,
            renderer=renderer,
            scheduler=BoundedScheduler(1),
            pacing_seconds=0,
        )
        order = OrderPayload.model_validate(make_order("#1001", ("Iced Latte", 3)))
        dispatch = asyncio.create_task(dispatch_service.dispatch_order(order))
        await asyncio.sleep(0.05)

        assert (await repository.find_by_attempt_id("1001-466157049-3"))["status"] == "pending"
        with pytest.raises(OrderInFlightError):
            await RetryService(dispatch_service).retry_attempt("1001-466157049-3")

        await dispatch
        assert print_client.submitted.count("#1001 - Iced Latte / Large (3/3)") == 1

    @pytest.mark.asyncio
    async def test_concurrent_retries_print_once(
        self,
        failed_order: OrderPayload,
        dispatch_service: DispatchService,
        print_client: FakePrintClient,
    ) -> None:
        """Test that two simultaneous retries of one attempt submit a single label."""
        print_client.delay = 0.05
        service = RetryService(dispatch_service)

        outcomes = await asyncio.gather(
            service.retry_attempt("1002-466157049-1"),
            service.retry_attempt("1002-466157049-1"),
            return_exceptions=True,
        )

        assert print_client.submitted.count(FAILING_TITLE) == 1
        assert sum(isinstance(outcome, OrderInFlightError) for outcome in outcomes) == 1
        assert "1002" not in in_flight_orders()

    @pytest.mark.asyncio
    async def test_attempt_of_claimed_order_is_refused(
        self, failed_order: OrderPayload, dispatch_service: DispatchService
    ) -> None:
        """Test that a single retry waits out an order retry holding the claim."""
        assert claim_order("1002")
        try:
            with pytest.raises(OrderInFlightError):
                await RetryService(dispatch_service).retry_attempt("1002-466157049-1")
        finally:
            release_order("1002")

    @pytest.mark.asyncio
    async def test_unknown_attempt(self, dispatch_service: DispatchService) -> None:
        """Test that retrying a missing attempt raises AttemptNotFoundError."""
        with pytest.raises(AttemptNotFoundError):
            await RetryService(dispatch_service).retry_attempt("9999-1-1")

    @pytest.mark.asyncio
    async def test_attempt_without_snapshot(
        self,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that an attempt with no snapshot cannot be retried."""
        attempt = expand_order(OrderPayload.model_validate(make_order("#1003", ("A", 1))))[0]
        attempt["retry_snapshot"] = None
        await repository.insert_pending(attempt)

        with pytest.raises(NoRetryDataError):
            await RetryService(dispatch_service).retry_attempt(attempt["attempt_id"])


class TestRetryOrder:
    """Tests for RetryService.retry_order."""

    @pytest.mark.asyncio
    async def test_retries_only_unsent_attempts(
        self,
        failed_order: OrderPayload,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
        print_client: FakePrintClient,
    ) -> None:
        """Test that labels already printed are not printed again."""
        summary = await RetryService(dispatch_service).retry_order("#1002")

        assert summary.printed == 1
        assert summary.failed == 0
        assert print_client.submitted.count(FAILING_TITLE) == 1
        assert len(print_client.submitted) == 3
        rows = await repository.find_by_order("1002")
        assert [r["status"] for r in rows] == ["sent", "sent", "sent"]

    @pytest.mark.asyncio
    async def test_include_sent_reprints_everything(
        self,
        failed_order: OrderPayload,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
    ) -> None:
        """Test that include_sent reprints every unit without adding rows."""
        summary = await RetryService(dispatch_service).retry_order("1002", include_sent=True)

        assert summary.printed == 3
        assert len(await repository.find_by_order("1002")) == 3

    @pytest.mark.asyncio
    async def test_nothing_to_retry(
        self,
        dispatch_service: DispatchService,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that a fully printed order yields an empty summary."""
        await dispatch_service.dispatch_order(OrderPayload.model_validate(make_order("#1001")))

        summary = await RetryService(dispatch_service).retry_order("1001")

        assert summary.printed == 0
        assert summary.results == []

    @pytest.mark.asyncio
    async def test_unknown_order(self, dispatch_service: DispatchService) -> None:
        """Test that retrying an unknown order raises OrderNotFoundError."""
        with pytest.raises(OrderNotFoundError):
            await RetryService(dispatch_service).retry_order("9999")

    @pytest.mark.asyncio
    async def test_order_in_flight(self, failed_order: OrderPayload, dispatch_service: DispatchService) -> None:
        """Test that an order still being dispatched cannot be retried."""
        assert claim_order("1002")
        try:
            with pytest.raises(OrderInFlightError):
                await RetryService(dispatch_service).retry_order("1002")
        finally:
            release_order("1002")


class TestResumeStalePending:
    """Tests for RetryService.resume_stale_pending."""

    @pytest.mark.asyncio
    @patch("src.services.retry_service.get_settings")
    async def test_resumes_abandoned_pending_attempts(
        self,
        mock_settings: MagicMock,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
        print_client: FakePrintClient,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that pending rows left behind are printed by the sweep."""
        mock_settings.return_value.stale_pending_seconds = 0
        for attempt in expand_order(OrderPayload.model_validate(make_order("#1007", ("A", 2)))):
            await repository.insert_pending(attempt)

        summaries = await RetryService(dispatch_service).resume_stale_pending()

        assert len(summaries) == 1
        assert summaries[0].order_id == "1007"
        assert summaries[0].printed == 2
        assert len(print_client.submitted) == 2

    @pytest.mark.asyncio
    @patch("src.services.retry_service.get_settings")
    async def test_ignores_recent_pending_attempts(
        self,
        mock_settings: MagicMock,
        dispatch_service: DispatchService,
        repository: InMemoryJobRepository,
        make_order: Callable[..., dict[str, Any]],
    ) -> None:
        """Test that freshly inserted pending rows are left alone."""
        mock_settings.return_value.stale_pending_seconds = 300
        for attempt in expand_order(OrderPayload.model_validate(make_order("#1008", ("A", 1)))):
            await repository.insert_pending(attempt)

        assert await RetryService(dispatch_service).resume_stale_pending() == []
