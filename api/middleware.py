"""Custom middleware for the Commitstream API.

This module provides middleware components for request logging,
response timing, and request-scoped log context.
"""

import time
import uuid
from collections.abc import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs all incoming requests and outgoing responses.

    Each request gets a short ID that is bound into the structlog context,
    so every log line emitted while handling it (including those of an
    ingestion session started by it) carries the same ``request_id``.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        """Process the request and log details.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            The HTTP response.
        """
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            query=str(request.query_params) if request.query_params else None,
            client_host=request.client.host if request.client else None,
        )

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed with unhandled exception",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        # Streaming bodies are still being produced at this point
        message = "Request completed"
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            message = "Stream opened"

        log_level = "info" if response.status_code < 400 else "warning"
        getattr(logger, log_level)(
            message,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id

        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Middleware that adds response timing headers.

    Adds X-Response-Time header to all responses indicating how long the
    handler took to produce the response head. For event streams this is
    the time to first byte, not the duration of the stream.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        """Process the request and add timing header.

        Args:
            request: The incoming HTTP request.
            call_next: The next middleware or route handler.

        Returns:
            The HTTP response with timing header.
        """
        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        return response
