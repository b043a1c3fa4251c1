"""FastAPI middleware for request/response logging and correlation."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from play_reconciler.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

# Liveness probes hit these every few seconds
PROBE_PATHS = frozenset({"/", "/health"})
ROUTE_GROUPS = frozenset({"rtdn", "subscriptions", "links", "affiliates", "devices", "admin"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a correlation id.

    The inbound X-Request-ID is reused when present and echoed on the
    response. Probe paths log at DEBUG; 4xx responses at WARNING and 5xx
    at ERROR so rejected RTDN pushes and auth failures stand out.
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        super().__init__(app)
        self.include_request_details = include_request_details

    def _log_completed(self, request: Request, status_code: int, duration_ms: float) -> None:
        if request.url.path in PROBE_PATHS and status_code < 400:
            log = logger.debug
        elif status_code >= 500:
            log = logger.error
        elif status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_context(request_id=request_id)

        if request.url.path in PROBE_PATHS:
            logger.debug("request_started", method=request.method, path=request.url.path)
        elif self.include_request_details:
            logger.info(
                "request_started",
                method=request.method,
                path=request.url.path,
                query_keys=sorted(request.query_params.keys()) if request.query_params else None,
                client_host=request.client.host if request.client else "unknown",
                user_agent=request.headers.get("user-agent"),
            )
        else:
            logger.info("request_started", method=request.method, path=request.url.path)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            self._log_completed(request, response.status_code, (time.perf_counter() - start_time) * 1000)
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        finally:
            clear_context()


class ContextMiddleware(BaseHTTPMiddleware):
    """Binds routing context to every log line of a request.

    - route_group: first path segment for API routes
    - announcement_id: from /admin/announcements/{id}
    - bearer_present: whether an Authorization bearer header was sent
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        parts = [p for p in request.url.path.split("/") if p]

        if parts and parts[0] in ROUTE_GROUPS:
            bind_context(route_group=parts[0])

        if "announcements" in parts:
            index = parts.index("announcements")
            if len(parts) > index + 1:
                bind_context(announcement_id=parts[index + 1])

        authorization = request.headers.get("authorization", "")
        bind_context(bearer_present=authorization.lower().startswith("bearer "))

        return await call_next(request)
