"""Custom middleware for request tracking, tracing, and logging."""

import re
import time
import uuid
import logging
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
import structlog

from .observability import metrics_collector


logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds a unique request ID to each request.

    The request ID is taken from the X-Request-ID header or generated,
    echoed back on the response, and bound into the structlog context
    so every log line of the request carries it.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[self.header_name] = request_id
        return response


class TraceContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that handles W3C Trace Context headers.

    https://www.w3.org/TR/trace-context/
    """

    traceparent_pattern = re.compile(
        r"^([0-9a-f]{2})-([0-9a-f]{32})-([0-9a-f]{16})-([0-9a-f]{2})$"
    )

    def _parse_traceparent(self, traceparent: str) -> Optional[dict]:
        match = self.traceparent_pattern.match(traceparent)
        if not match:
            return None

        version, trace_id, parent_id, flags = match.groups()
        # Only version 00 is defined; all-zero ids are invalid
        if version != "00" or trace_id == "0" * 32 or parent_id == "0" * 16:
            return None

        return {"trace_id": trace_id, "parent_id": parent_id, "flags": flags}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        tracestate = request.headers.get("tracestate")
        incoming = self._parse_traceparent(request.headers.get("traceparent", ""))

        trace_id = incoming["trace_id"] if incoming else uuid.uuid4().hex
        flags = incoming["flags"] if incoming else "01"
        span_id = uuid.uuid4().hex[:16]

        request.state.trace_context = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": incoming["parent_id"] if incoming else None,
            "flags": flags,
        }

        response = await call_next(request)

        response.headers["traceparent"] = f"00-{trace_id}-{span_id}-{flags}"
        if tracestate:
            response.headers["tracestate"] = tracestate
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs HTTP requests and records request metrics.
    """

    def __init__(self, app: ASGIApp, skip_paths: Optional[list] = None):
        super().__init__(app)
        self.skip_paths = skip_paths or ["/health", "/metrics", "/favicon.ico"]

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        trace_context = getattr(request.state, "trace_context", {})
        log_data = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "trace_id": trace_context.get("trace_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "client_ip": self._get_client_ip(request),
        }

        logger.info("HTTP request started", extra=log_data)

        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start_time
            metrics_collector.record_request(request.method, request.url.path, 500, duration)
            logger.exception("HTTP request failed", extra=log_data)
            raise

        duration = time.perf_counter() - start_time
        metrics_collector.record_request(request.method, request.url.path, response.status_code, duration)
        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        })

        if response.status_code >= 500:
            logger.error("HTTP request completed with server error", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("HTTP request completed with client error", extra=log_data)
        else:
            logger.info("HTTP request completed successfully", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Setup all middleware on the FastAPI app.

    Last added runs first, so request IDs are bound before logging sees the request.
    """
    if enable_logging:
        app.add_middleware(LoggingMiddleware)

    app.add_middleware(TraceContextMiddleware)
    app.add_middleware(RequestIDMiddleware)
