"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import APIError, api_error_handler, error_handler_middleware
from src.api.middleware.latency_logging import latency_logging_middleware
from src.api.middleware.request_size import request_size_limit_middleware
from src.api.routes import health, jobs, webhooks
from src.core.config import get_settings
from src.core.printnode import init_print_client, shutdown_print_client
from src.core.scheduler import init_scheduler, shutdown_scheduler

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Seconds to let detached order dispatches finish on shutdown
SHUTDOWN_DRAIN_TIMEOUT = 30.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the print scheduler and PrintNode client, then drain and close them.

    Shutdown waits for detached order dispatches before the HTTP pool is
    closed, so in-flight labels can still be submitted.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    await init_scheduler()
    logger.info("Print scheduler initialized")

    await init_print_client()
    logger.info("PrintNode client initialized (printer=%d)", settings.printnode_printer_id)

    yield

    await shutdown_scheduler(timeout=SHUTDOWN_DRAIN_TIMEOUT)
    logger.info("Print scheduler shutdown")
    await shutdown_print_client()
    logger.info("PrintNode client shutdown")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Build the print relay application with its middleware stack and routers."""
    settings = get_settings()

    app = FastAPI(
        title="Print Relay",
        description="Turns order webhooks into one printed label per purchased unit",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Add latency logging middleware (tracks request timing)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Add request size limit middleware (rejects oversized requests early)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Render APIError raised from routes and dependencies
    app.add_exception_handler(APIError, api_error_handler)

    # Health routes
    app.include_router(health.router)

    # Order and PrintNode webhooks at root level
    app.include_router(webhooks.router)

    # Jobs, retry and maintenance routes under /api
    app.include_router(jobs.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
