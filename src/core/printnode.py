"""PrintNode API client with timing and retry logic."""

import base64
import logging
import time
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.exceptions import SubmissionError

logger = logging.getLogger(__name__)

# Retry backoff bounds (seconds)
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 10

# Latency thresholds for logging (milliseconds)
SLOW_CALL_THRESHOLD_MS = 3000
VERY_SLOW_CALL_THRESHOLD_MS = 8000


class PrintNodeClient:
    """Submit PDF documents to a PrintNode printer.

    Only connection errors are retried: the request never reached PrintNode,
    so resending cannot produce a duplicate label. Timeouts and HTTP errors
    surface as SubmissionError straight away.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        printer_id: int,
        source: str = "Shopify Print Client",
        max_attempts: int = 3,
        min_wait_seconds: float = MIN_WAIT_SECONDS,
    ) -> None:
        self._http = http_client
        self._api_key = api_key
        self.printer_id = printer_id
        self.source = source
        self._max_attempts = max_attempts
        self._min_wait = min_wait_seconds

    @property
    def is_configured(self) -> bool:
        """Check if an API key is available."""
        return bool(self._api_key)

    async def _post_with_retry(self, payload: dict[str, Any]) -> httpx.Response:
        """POST a print job, retrying connection failures with exponential backoff."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(httpx.ConnectError),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=1, min=self._min_wait, max=MAX_WAIT_SECONDS),
            reraise=True,
        ):
            with attempt:
                response = await self._http.post(
                    "/printjobs",
                    json=payload,
                    auth=(self._api_key, ""),
                )
                response.raise_for_status()
                return response

    async def submit(self, pdf_bytes: bytes, title: str) -> str:
        """Submit a PDF to the configured printer.

        Args:
            pdf_bytes: Rendered label document.
            title: Job title shown in the PrintNode queue.

        Returns:
            str: PrintNode print job ID.

        Raises:
            SubmissionError: If PrintNode rejects the job or cannot be reached.
        """
        if not self.is_configured:
            raise SubmissionError("PrintNode API key is not configured. Please set PRINTNODE_API_KEY.")

        payload = {
            "printerId": self.printer_id,
            "title": title,
            "contentType": "pdf_base64",
            "content": base64.b64encode(pdf_bytes).decode("ascii"),
            "source": self.source,
        }

        start_time = time.perf_counter()
        error_msg = None

        try:
            response = await self._post_with_retry(payload)
            job_id = response.json()
            if isinstance(job_id, dict):
                job_id = job_id.get("id")
            if job_id is None:
                error_msg = "PrintNode response did not include a job id"
                raise SubmissionError(error_msg, status_code=response.status_code)
            return str(job_id)

        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            error_msg = f"PrintNode rejected job ({e.response.status_code}): {detail}"
            raise SubmissionError(error_msg, status_code=e.response.status_code) from e

        except httpx.TimeoutException as e:
            error_msg = f"PrintNode request timed out: {type(e).__name__}"
            raise SubmissionError(error_msg) from e

        except httpx.HTTPError as e:
            error_msg = f"PrintNode unreachable: {type(e).__name__}: {e}"
            raise SubmissionError(error_msg) from e

        except ValueError as e:
            error_msg = f"PrintNode returned an unreadable response: {e}"
            raise SubmissionError(error_msg) from e

        finally:
            latency_ms = (time.perf_counter() - start_time) * 1000
            log_msg = f"PrintNode submit: printer={self.printer_id}, title={title!r}, latency={latency_ms:.2f}ms"

            if error_msg:
                logger.error(log_msg + f", error={error_msg}")
            elif latency_ms > VERY_SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"VERY SLOW PrintNode call: {log_msg}")
            elif latency_ms > SLOW_CALL_THRESHOLD_MS:
                logger.warning(f"SLOW PrintNode call: {log_msg}")
            else:
                logger.info(log_msg)


def _error_detail(response: httpx.Response) -> str:
    """Extract a readable message from a PrintNode error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("message") or body.get("code") or body)
    return str(body)


# Global singleton instances
_http_client: httpx.AsyncClient | None = None
_print_client: PrintNodeClient | None = None


def get_print_client() -> PrintNodeClient:
    """Get or create the global PrintNode client."""
    global _http_client, _print_client
    if _print_client is None:
        settings = get_settings()
        if _http_client is None:
            _http_client = httpx.AsyncClient(
                base_url=settings.printnode_base_url,
                timeout=settings.printnode_timeout_seconds,
                headers={"Content-Type": "application/json"},
            )
        _print_client = PrintNodeClient(
            http_client=_http_client,
            api_key=settings.printnode_api_key,
            printer_id=settings.printnode_printer_id,
            source=settings.print_source,
            max_attempts=settings.printnode_max_retries,
        )
    return _print_client


async def init_print_client() -> PrintNodeClient:
    """Initialize the PrintNode client. Call at app startup."""
    client = get_print_client()
    if not client.is_configured:
        logger.warning("PrintNode API key not configured. Print submissions will fail.")
    return client


async def shutdown_print_client() -> None:
    """Close the underlying HTTP connection pool. Call at app shutdown."""
    global _http_client, _print_client
    if _http_client:
        await _http_client.aclose()
    _http_client = None
    _print_client = None
