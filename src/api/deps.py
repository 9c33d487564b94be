"""FastAPI dependency injection functions."""

import hmac
from typing import Annotated

from fastapi import Depends, Header

from src.api.middleware.error_handler import AuthenticationError
from src.core.config import Settings, get_settings
from src.core.printnode import PrintNodeClient, get_print_client
from src.core.scheduler import get_scheduler, get_task_supervisor
from src.services.dispatch_service import DispatchService
from src.services.job_repository import JobRepository, get_job_repository
from src.services.label_renderer import LabelRenderer, get_label_renderer
from src.services.order_intake_service import OrderIntakeService
from src.services.printnode_event_service import PrintNodeEventService, get_printnode_event_service
from src.services.retry_service import RetryService


def get_repository() -> JobRepository:
    """Provide the configured job repository."""
    return get_job_repository()


def get_submission_client() -> PrintNodeClient:
    """Provide the PrintNode client."""
    return get_print_client()


def get_renderer() -> LabelRenderer:
    """Provide the label renderer."""
    return get_label_renderer()


def get_event_service() -> PrintNodeEventService:
    """Provide the PrintNode event log."""
    return get_printnode_event_service()


def get_dispatch_service(
    repository: Annotated[JobRepository, Depends(get_repository)],
    print_client: Annotated[PrintNodeClient, Depends(get_submission_client)],
    renderer: Annotated[LabelRenderer, Depends(get_renderer)],
) -> DispatchService:
    """Build a dispatch service on the process-wide scheduler."""
    return DispatchService(
        repository=repository,
        print_client=print_client,
        renderer=renderer,
        scheduler=get_scheduler(),
    )


def get_intake_service(
    dispatch_service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> OrderIntakeService:
    """Build the order intake service."""
    return OrderIntakeService(dispatch_service, supervisor=get_task_supervisor())


def get_retry_service(
    dispatch_service: Annotated[DispatchService, Depends(get_dispatch_service)],
) -> RetryService:
    """Build the retry service."""
    return RetryService(dispatch_service)


def verify_cron_token(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> None:
    """Require 'Authorization: Bearer <CRON_SECRET>'.

    Raises:
        AuthenticationError: If no cron secret is configured or the token does not match.
    """
    expected = f"Bearer {settings.cron_secret}"
    if not settings.cron_secret or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise AuthenticationError("Unauthorized")


Repository = Annotated[JobRepository, Depends(get_repository)]
Intake = Annotated[OrderIntakeService, Depends(get_intake_service)]
Retrier = Annotated[RetryService, Depends(get_retry_service)]
EventLog = Annotated[PrintNodeEventService, Depends(get_event_service)]
AppSettings = Annotated[Settings, Depends(get_settings)]
CronAuth = Depends(verify_cron_token)
