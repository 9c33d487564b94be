"""Print job listing, retry and maintenance routes."""

import logging

from fastapi import APIRouter, Query

from src.api.deps import AppSettings, CronAuth, EventLog, Repository, Retrier
from src.api.middleware.error_handler import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    SubmissionFailedError,
)
from src.core.exceptions import (
    AttemptNotFoundError,
    NoRetryDataError,
    OrderInFlightError,
    OrderNotFoundError,
    SubmissionError,
)
from src.schemas.print_job import (
    PrintJobListResponse,
    PrintJobResponse,
    PrintNodeEventListResponse,
    PrintNodeEventResponse,
    RetryJobResponse,
    RetryOrderResponse,
    SweepResponse,
)
from src.services.dispatch_service import normalize_order_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


@router.get(
    "/jobs",
    response_model=PrintJobListResponse,
    summary="List recent print jobs",
    description="Returns the most recent print attempts, newest first.",
)
async def list_jobs(repository: Repository, settings: AppSettings) -> PrintJobListResponse:
    """List recent print attempts, capped at JOBS_LIST_LIMIT."""
    rows = await repository.list_recent(settings.jobs_list_limit)
    items = [PrintJobResponse.from_row(row) for row in rows]
    return PrintJobListResponse(items=items, count=len(items))


@router.get(
    "/jobs/{attempt_id}",
    response_model=PrintJobResponse,
    summary="Get a print job",
)
async def get_job(attempt_id: str, repository: Repository) -> PrintJobResponse:
    """Get a single print attempt.

    Raises:
        NotFoundError: 404 if the attempt does not exist.
    """
    row = await repository.find_by_attempt_id(attempt_id)
    if not row:
        raise NotFoundError("Print job not found")
    return PrintJobResponse.from_row(row)


@router.get(
    "/orders/{order_id}/jobs",
    response_model=PrintJobListResponse,
    summary="List an order's print jobs",
)
async def list_order_jobs(order_id: str, repository: Repository) -> PrintJobListResponse:
    """List every attempt of one order in creation order.

    Raises:
        NotFoundError: 404 if the order has no attempts.
    """
    rows = await repository.find_by_order(normalize_order_id(order_id))
    if not rows:
        raise NotFoundError("Order not found")
    items = [PrintJobResponse.from_row(row) for row in rows]
    return PrintJobListResponse(items=items, count=len(items))


@router.post(
    "/retry-job/{attempt_id}",
    response_model=RetryJobResponse,
    summary="Retry one print job",
    description="Re-renders and re-submits a single label from its stored snapshot.",
)
async def retry_job(attempt_id: str, retrier: Retrier) -> RetryJobResponse:
    """Re-print one attempt and wait for the outcome.

    Raises:
        NotFoundError: 404 if the attempt does not exist.
        BadRequestError: 400 if no snapshot is stored.
        ConflictError: 409 if the job or its order is still printing.
        SubmissionFailedError: 500 if the re-submission failed.
    """
    try:
        row = await retrier.retry_attempt(attempt_id)
    except AttemptNotFoundError as e:
        raise NotFoundError("Job not found.") from e
    except NoRetryDataError as e:
        raise BadRequestError("No retry data available for this job.") from e
    except OrderInFlightError as e:
        raise ConflictError(str(e)) from e
    except SubmissionError as e:
        raise SubmissionFailedError(
            f"Failed to retry job: {e}",
            details=[{"loc": ["attempt_id"], "msg": str(e), "type": "submission_error"}],
        ) from e

    return RetryJobResponse(
        message="Job successfully resent to printer.",
        job=PrintJobResponse.from_row(row),
    )


@router.post(
    "/retry-order/{order_id}",
    response_model=RetryOrderResponse,
    summary="Retry an order",
    description="Re-prints an order's failed or pending labels from stored snapshots; all=true reprints every label.",
)
async def retry_order(
    order_id: str,
    retrier: Retrier,
    include_sent: bool = Query(default=False, alias="all", description="Also reprint labels already sent"),
) -> RetryOrderResponse:
    """Re-print an order and wait for every unit to finish.

    Raises:
        NotFoundError: 404 if the order has no attempts.
        BadRequestError: 400 if no snapshot is stored.
        ConflictError: 409 if the order is still printing.
        SubmissionFailedError: 500 if any label failed again.
    """
    try:
        summary = await retrier.retry_order(order_id, include_sent=include_sent)
    except OrderNotFoundError as e:
        raise NotFoundError("Order not found.") from e
    except NoRetryDataError as e:
        raise BadRequestError("No retry data available for this order.") from e
    except OrderInFlightError as e:
        raise ConflictError(str(e)) from e

    if summary.failed:
        raise SubmissionFailedError(
            f"{summary.failed} of {summary.printed + summary.failed} label(s) failed again.",
            details=[
                {"loc": ["attempt_id", result.attempt_id], "msg": result.error_message or "failed", "type": "submission_error"}
                for result in summary.results
                if result.status == "failed"
            ],
        )

    if not summary.printed:
        return RetryOrderResponse(message="Nothing to retry.", summary=summary)
    return RetryOrderResponse(message=f"Order resent: {summary.printed} label(s) printed.", summary=summary)


@router.get(
    "/printnode-events",
    response_model=PrintNodeEventListResponse,
    summary="List PrintNode events",
)
async def list_printnode_events(events: EventLog, settings: AppSettings) -> PrintNodeEventListResponse:
    """List recently received PrintNode webhook events."""
    rows = await events.list_recent(settings.jobs_list_limit)
    return PrintNodeEventListResponse(
        items=[PrintNodeEventResponse(**row) for row in rows],
        webhook_configured=bool(settings.printnode_webhook_secret),
    )


@router.get(
    "/cron/process-jobs",
    response_model=SweepResponse,
    dependencies=[CronAuth],
    summary="Resume stale pending jobs",
    description="Re-dispatches labels left pending longer than STALE_PENDING_SECONDS. Requires the cron bearer token.",
)
async def process_pending_jobs(retrier: Retrier) -> SweepResponse:
    """Resume attempts abandoned in pending, e.g. after a restart mid-order."""
    summaries = await retrier.resume_stale_pending()
    resumed = sum(len(summary.results) for summary in summaries)
    if not resumed:
        return SweepResponse(message="No pending jobs.")
    logger.info("Pending sweep resumed %d attempt(s) across %d order(s)", resumed, len(summaries))
    return SweepResponse(
        message=f"Resumed {resumed} pending job(s).",
        resumed=resumed,
        summaries=summaries,
    )
