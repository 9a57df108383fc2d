"""FastAPI middleware for monitoring, tracing, and logging.

Implements request tracking with correlation IDs and metrics collection.
"""

import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp
from opentelemetry import trace

from vodstream.core.metrics import (
    HTTP_REQUESTS_TOTAL,
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
)
from vodstream.core.logging import set_correlation_id, clear_correlation_id, get_correlation_id
from vodstream.core.tracing import create_span, add_span_attributes, record_exception

_ASSET_ID_RE = re.compile(r"/[0-9a-f]{32}(?=/|$)", re.IGNORECASE)
_SEGMENT_RE = re.compile(r"/index\d+\.ts$")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for collecting HTTP request metrics."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        method = request.method
        path = self._normalize_path(request.url.path)

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=path).inc()

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=method, endpoint=path
            ).observe(duration)

            HTTP_REQUESTS_TOTAL.labels(
                method=method, endpoint=path, status_code=str(status_code)
            ).inc()

            HTTP_REQUESTS_IN_PROGRESS.labels(method=method, endpoint=path).dec()

    def _normalize_path(self, path: str) -> str:
        """Normalize path to reduce cardinality.

        Replaces asset ids and segment numbers with placeholders.

        Args:
            path: Original request path

        Returns:
            Normalized path
        """
        path = _ASSET_ID_RE.sub("/{id}", path)
        path = _SEGMENT_RE.sub("/{segment}", path)
        return path


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware for managing correlation IDs."""

    CORRELATION_ID_HEADER = "X-Correlation-ID"

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request with correlation ID.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response with correlation ID header
        """
        correlation_id = request.headers.get(
            self.CORRELATION_ID_HEADER,
            str(uuid.uuid4()),
        )

        set_correlation_id(correlation_id)

        try:
            response = await call_next(request)
            response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()


class TracingMiddleware(BaseHTTPMiddleware):
    """Middleware for distributed tracing."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        method = request.method
        path = request.url.path

        with create_span(
            f"{method} {path}",
            attributes={
                "http.method": method,
                "http.url": str(request.url),
                "http.route": path,
                "http.scheme": request.url.scheme,
                "http.host": request.url.hostname or "",
                "http.user_agent": request.headers.get("user-agent", ""),
                "correlation_id": get_correlation_id(),
            },
            kind=trace.SpanKind.SERVER,
        ):
            try:
                response = await call_next(request)
                add_span_attributes({
                    "http.status_code": response.status_code,
                })
                return response
            except Exception as e:
                record_exception(e)
                raise


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    def __init__(self, app: ASGIApp, log_request_body: bool = False):
        super().__init__(app)
        self.log_request_body = log_request_body
        self.logger = logging.getLogger("vodstream.requests")

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Log request and response details.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response from handler
        """
        start_time = time.perf_counter()

        self.logger.info(
            "Request started",
            extra={
                "method": request.method,
                "path": request.url.path,
                "query": str(request.query_params),
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
                "content_length": request.headers.get("content-length"),
            }
        )

        try:
            response = await call_next(request)

            duration = time.perf_counter() - start_time

            self.logger.info(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration * 1000, 2),
                }
            )

            return response
        except Exception as e:
            duration = time.perf_counter() - start_time

            self.logger.error(
                "Request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration * 1000, 2),
                    "error": str(e),
                },
                exc_info=True,
            )
            raise


__all__ = [
    "MetricsMiddleware",
    "CorrelationIdMiddleware",
    "TracingMiddleware",
    "RequestLoggingMiddleware",
]
