"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from play_reconciler.logging_config import configure_logging, get_logger
from play_reconciler.middleware import ContextMiddleware, RequestLoggingMiddleware

# Initialize logger
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Registers the record-change triggers and starts the background
    workers enabled in config; stops them on shutdown.
    """
    from play_reconciler.config import get_config
    from play_reconciler.services.rtdn_listener import RtdnListener
    from play_reconciler.services.sweeper import SweepScheduler
    from play_reconciler.services.triggers import register_triggers

    # Startup
    logger.info("reconciler_starting", version="0.1.0")
    config = get_config()
    register_triggers()

    scheduler = None
    listener = None
    try:
        if config.sweep.enabled:
            scheduler = SweepScheduler()
            scheduler.start()
        else:
            logger.info("sweep_disabled")

        if config.pubsub.listener_enabled:
            listener = RtdnListener()
            listener.start()
        else:
            logger.info("rtdn_listener_disabled", message="Using the push endpoint only")

        app.state.sweep_scheduler = scheduler
        app.state.rtdn_listener = listener
        logger.info("reconciler_started", status="ready")
        yield
    finally:
        # Shutdown
        logger.info("reconciler_shutting_down")
        if listener is not None:
            listener.stop()
        if scheduler is not None:
            scheduler.stop()
        logger.info("reconciler_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    # Configure logging
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="Play Reconciler",
        description="Google Play subscription reconciliation: RTDN ingestion, verification and user projection",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add logging middleware
    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    # Register routers
    from play_reconciler.api import admin, affiliates, devices, links, rtdn, subscriptions

    for module in (rtdn, subscriptions, links, affiliates, devices, admin):
        app.include_router(module.router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "play-reconciler",
            "status": "running",
            "version": "0.1.0",
        }

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Detailed health check."""
        from play_reconciler.repositories.subscription_store import get_subscription_store
        from play_reconciler.repositories.user_store import get_user_store

        scheduler = getattr(app.state, "sweep_scheduler", None)
        listener = getattr(app.state, "rtdn_listener", None)
        return {
            "status": "healthy",
            "sweep": "running" if scheduler is not None and scheduler.running else "stopped",
            "rtdn_listener": "running" if listener is not None and listener.running else "stopped",
            "records": f"{len(get_subscription_store())} subscriptions, {len(get_user_store())} users",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "internal_server_error"},
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


# Create app instance
app = create_app()
