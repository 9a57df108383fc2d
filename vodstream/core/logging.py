"""Structured logging with correlation IDs and asset context.

Every record carries the correlation id of the request that produced it and,
while an upload or transcode job is being handled, the id of the asset it
concerns. Transcode jobs run on worker threads, so the orchestrator copies
the submitting request's context into the worker before logging.
"""

import logging
import sys
import traceback
import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, Any
from contextvars import ContextVar

from vodstream.core.tracing import get_trace_id, get_span_id

# Context variable for correlation ID
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Context variable for the asset being uploaded or transcoded
asset_id_var: ContextVar[Optional[str]] = ContextVar("asset_id", default=None)

# LogRecord attributes that are never copied into "extra"
_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))

# Context fields promoted to the top level of each JSON record
_CONTEXT_ATTRS = frozenset(("correlation_id", "asset_id"))

# Placeholder for the plain-text format outside any asset
NO_ASSET = "-"


def get_correlation_id() -> str:
    """Get the current correlation ID or generate a new one.

    Returns:
        Correlation ID string
    """
    cid = correlation_id_var.get()
    if cid is None:
        # Try to get from trace context first
        trace_id = get_trace_id()
        if trace_id:
            return trace_id
        # Generate new correlation ID
        cid = str(uuid.uuid4())
        correlation_id_var.set(cid)
    return cid


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID from the current context."""
    correlation_id_var.set(None)


def get_asset_id() -> Optional[str]:
    """Return the asset bound to the current context, if any."""
    return asset_id_var.get()


@contextmanager
def bind_asset_id(asset_id: str) -> Iterator[str]:
    """Tag every record logged inside the block with ``asset_id``.

    The previous binding is restored on exit, so nested jobs on a reused
    worker thread do not leak ids into each other.
    """
    token = asset_id_var.set(asset_id)
    try:
        yield asset_id
    finally:
        asset_id_var.reset(token)


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter with correlation and asset context."""

    def __init__(
        self,
        include_stack_trace: bool = True,
        include_extra_fields: bool = True,
    ):
        super().__init__()
        self.include_stack_trace = include_stack_trace
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON formatted log string
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }

        # Explicit asset_id passed as extra wins over the bound one
        asset_id = getattr(record, "asset_id", None)
        if asset_id in (None, NO_ASSET):
            asset_id = get_asset_id()
        if asset_id:
            log_data["asset_id"] = asset_id

        # Add trace context if available
        trace_id = get_trace_id()
        span_id = get_span_id()
        if trace_id:
            log_data["trace_id"] = trace_id
        if span_id:
            log_data["span_id"] = span_id

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if record.exc_info and self.include_stack_trace:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stack_trace": self._format_stack_trace(record.exc_info),
            }

        if self.include_extra_fields:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_ATTRS or key in _CONTEXT_ATTRS:
                    continue
                try:
                    # Paths and enums are common extras; keep them readable
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)

    def _format_stack_trace(self, exc_info) -> Optional[list[str]]:
        if not exc_info or not exc_info[2]:
            return None

        return traceback.format_exception(*exc_info)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that stamps correlation and asset ids on every record.

    The plain-text format references both fields, so they must exist even
    outside a request.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        if not getattr(record, "asset_id", None):
            record.asset_id = get_asset_id() or NO_ASSET
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_stack_trace: bool = True,
) -> None:
    """Set up application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON structured logging
        include_stack_trace: Include stack traces in error logs
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # create_app may run several times per process; keep one handler
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.addFilter(CorrelationIdFilter())

    if json_format:
        formatter = StructuredFormatter(
            include_stack_trace=include_stack_trace,
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - "
            "[%(correlation_id)s] [asset=%(asset_id)s] - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set log levels for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("multipart").setLevel(logging.WARNING)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error with correlation ID and optional exception.

    Args:
        logger: Logger instance
        message: Error message
        exception: Optional exception; its traceback goes to the log only
        **extra: Additional context fields
    """
    extra["correlation_id"] = get_correlation_id()

    if exception:
        logger.error(message, exc_info=exception, extra=extra)
    else:
        logger.error(message, extra=extra)


def log_warning(
    logger: logging.Logger,
    message: str,
    **extra: Any,
) -> None:
    """Log a warning with correlation ID."""
    extra["correlation_id"] = get_correlation_id()
    logger.warning(message, extra=extra)


def log_info(
    logger: logging.Logger,
    message: str,
    **extra: Any,
) -> None:
    extra["correlation_id"] = get_correlation_id()
    logger.info(message, extra=extra)
