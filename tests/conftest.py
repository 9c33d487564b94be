"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JOB_STORE", "memory")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PRINTNODE_API_KEY", "test-printnode-key")
os.environ.setdefault("PRINTNODE_WEBHOOK_SECRET", "test-printnode-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("PRINT_PACING_SECONDS", "0")

from src.core.exceptions import RenderError, SubmissionError  # noqa: E402
from src.core.scheduler import BoundedScheduler  # noqa: E402
from src.services.dispatch_service import DispatchService  # noqa: E402
from src.services.job_repository import InMemoryJobRepository, get_job_repository  # noqa: E402
from src.services.printnode_event_service import get_printnode_event_service  # noqa: E402


class FakePrintClient:
    """Records submissions and tracks how many run at once."""

    is_configured = True

    def __init__(self, fail_titles: set[str] | None = None, delay: float = 0.0) -> None:
        self.fail_titles = fail_titles or set()
        self.delay = delay
        self.submitted: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._next_id = 5000

    async def submit(self, pdf_bytes: bytes, title: str) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if title in self.fail_titles:
                raise SubmissionError(f"PrintNode rejected job (503): printer offline for {title}", status_code=503)
            self.submitted.append(title)
            self._next_id += 1
            return str(self._next_id)
        finally:
            self.in_flight -= 1


class FakeRenderer:
    """Returns a fixed document, or fails for chosen product titles."""

    def __init__(self, fail_titles: set[str] | None = None) -> None:
        self.fail_titles = fail_titles or set()
        self.rendered: list[tuple[dict[str, Any], dict[str, Any]]] = []

    async def render(self, item: dict[str, Any], order_info: dict[str, Any]) -> bytes:
        if item.get("title") in self.fail_titles:
            raise RenderError(f"Label rendering failed for {item.get('title')}")
        self.rendered.append((item, order_info))
        return b"%PDF-1.7 fake label"


@pytest.fixture(autouse=True)
def fresh_stores() -> Generator[None, None, None]:
    """Start every test with empty in-memory stores."""
    get_job_repository.cache_clear()
    get_printnode_event_service.cache_clear()
    yield
    get_job_repository.cache_clear()
    get_printnode_event_service.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def repository() -> InMemoryJobRepository:
    """Provide an empty in-memory job repository."""
    return InMemoryJobRepository()


@pytest.fixture
def print_client() -> FakePrintClient:
    """Provide a recording print client."""
    return FakePrintClient()


@pytest.fixture
def renderer() -> FakeRenderer:
    """Provide a fake label renderer."""
    return FakeRenderer()


@pytest.fixture
def dispatch_service(
    repository: InMemoryJobRepository,
    print_client: FakePrintClient,
    renderer: FakeRenderer,
) -> DispatchService:
    """Provide a dispatch service wired to fakes with concurrency 3 and no pacing."""
    return DispatchService(
        repository=repository,
        print_client=print_client,
        renderer=renderer,
        scheduler=BoundedScheduler(3),
        pacing_seconds=0,
    )


@pytest.fixture
def make_order() -> Callable[..., dict[str, Any]]:
    """Build order webhook payloads.

    Returns:
        Callable: Factory taking the order name and (title, quantity) pairs.
    """

    def _make(name: str = "#1001", *items: tuple[str, int], **extra: Any) -> dict[str, Any]:
        items = items or (("Iced Latte", 3),)
        payload: dict[str, Any] = {
            "id": 820982911946154508,
            "name": name,
            "order_number": int(name.lstrip("#")) if name.lstrip("#").isdigit() else None,
            "currency": "USD",
            "customer": {"first_name": "Ada", "last_name": "Lovelace"},
            "line_items": [
                {
                    "id": 466157049 + index,
                    "title": title,
                    "variant_title": "Large",
                    "sku": f"SKU-{index}",
                    "quantity": quantity,
                    "price": "4.50",
                }
                for index, (title, quantity) in enumerate(items)
            ],
        }
        payload.update(extra)
        return payload

    return _make


@pytest.fixture
def app(print_client: FakePrintClient, renderer: FakeRenderer) -> Generator[FastAPI, None, None]:
    """Provide the application with fake print and render collaborators.

    Yields:
        FastAPI: Application with dependency overrides installed.
    """
    from src.api.deps import get_renderer, get_submission_client
    from src.main import app as application

    application.dependency_overrides[get_submission_client] = lambda: print_client
    application.dependency_overrides[get_renderer] = lambda: renderer
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        app: Application fixture with fakes installed.

    Yields:
        TestClient: FastAPI test client.
    """
    with TestClient(app) as test_client:
        yield test_client
