"""Webhook routes for order intake and PrintNode events."""

import hmac
import json
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from src.api.deps import AppSettings, EventLog, Intake
from src.api.middleware.error_handler import AuthenticationError, BadRequestError
from src.core.exceptions import MalformedOrderError
from src.schemas.print_job import WebhookAck
from src.services.order_intake_service import verify_webhook_hmac

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post(
    "/webhooks",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    summary="Receive an order webhook",
    description="Queues one label per line item unit for printing. Redelivered orders are acknowledged and ignored.",
)
async def order_webhook(request: Request, intake: Intake, settings: AppSettings) -> WebhookAck | JSONResponse:
    """Accept an order and start printing in the background.

    The response is sent before any label prints, so the webhook sender
    never waits on the printer. Print failures are only visible through
    /api/jobs.

    Returns:
        WebhookAck: Accepted or duplicate-ignored acknowledgment.

    Raises:
        AuthenticationError: 401 if the HMAC signature is configured and invalid.
        BadRequestError: 400 if the order is malformed.
    """
    body = await request.body()

    if settings.order_webhook_secret:
        signature = request.headers.get("x-shopify-hmac-sha256")
        if not verify_webhook_hmac(body, signature, settings.order_webhook_secret):
            logger.warning("Order webhook rejected: invalid HMAC signature")
            raise AuthenticationError("Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise BadRequestError("Request body is not valid JSON") from e

    try:
        result = await intake.accept(payload)
    except MalformedOrderError as e:
        logger.warning("Rejected malformed order: %s", e)
        raise BadRequestError(str(e)) from e
    except Exception:
        logger.exception("Error in order webhook")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Internal server error."},
        )

    return WebhookAck(success=True, message=result.message)


@router.post(
    "/printnode-webhook",
    status_code=status.HTTP_200_OK,
    response_class=PlainTextResponse,
    summary="Receive PrintNode events",
    description="Stores PrintNode webhook events verbatim. Requires the shared webhook secret header.",
)
async def printnode_webhook(request: Request, events: EventLog, settings: AppSettings) -> PlainTextResponse:
    """Store a batch of PrintNode events.

    Returns:
        PlainTextResponse: 'OK' with the X-PrintNode-Webhook-Status header.

    Raises:
        AuthenticationError: 401 if the secret is missing, unset or wrong.
    """
    received = request.headers.get("x-printnode-webhook-secret", "")
    secret = settings.printnode_webhook_secret
    if not secret or not hmac.compare_digest(received.encode(), secret.encode()):
        raise AuthenticationError("Unauthorized")

    try:
        payload = await request.json()
    except ValueError as e:
        raise BadRequestError("Request body is not valid JSON") from e

    if isinstance(payload, list):
        logger.info("Received %d event(s) from PrintNode webhook", len(payload))
        await events.record_events(payload)

    return PlainTextResponse("OK", headers={"X-PrintNode-Webhook-Status": "OK"})
