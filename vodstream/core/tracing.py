"""OpenTelemetry distributed tracing configuration.

Request spans are opened by TracingMiddleware. The transcode orchestrator
opens one ``transcode.job`` span per job on its worker thread and records
each engine progress notification on it as a span event.
"""

import logging
from typing import Optional
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.trace import Status, StatusCode, Span
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.propagate import set_global_textmap

logger = logging.getLogger(__name__)

# Provider owned by this process, and the tracer handed out from it
_tracer: Optional[trace.Tracer] = None
_provider: Optional[TracerProvider] = None

# The OpenTelemetry API accepts one global provider per process
_global_provider_installed = False


def setup_tracing(
    service_name: str,
    service_version: str,
    environment: str = "development",
    otlp_endpoint: Optional[str] = None,
    enable_console_export: bool = False,
) -> trace.Tracer:
    """Set up OpenTelemetry tracing.

    Calling this while a provider is live returns the existing tracer. After
    ``shutdown_tracing`` a fresh provider is built; spans are then created
    from it directly because the global slot is already taken.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        environment: Deployment environment
        otlp_endpoint: OTLP exporter endpoint (optional)
        enable_console_export: Enable console span export for debugging

    Returns:
        Configured tracer instance
    """
    global _tracer, _provider, _global_provider_installed

    if _provider is not None:
        return get_tracer()

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
        "deployment.environment": environment,
    })
    provider = TracerProvider(resource=resource)

    # Add OTLP exporter if endpoint is provided
    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
            provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
            logger.info(f"OTLP tracing enabled, exporting to {otlp_endpoint}")
        except ImportError:
            logger.warning("OTLP exporter not available, install the 'otlp' extra")

    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console span export enabled")

    if not _global_provider_installed:
        trace.set_tracer_provider(provider)
        set_global_textmap(TraceContextTextMapPropagator())
        _global_provider_installed = True

    _provider = provider
    _tracer = provider.get_tracer(service_name, service_version)

    logger.info(f"Tracing initialized for {service_name} v{service_version}")
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or a no-op tracer if tracing is off."""
    if _tracer is None:
        return trace.get_tracer(__name__)
    return _tracer


def get_current_span() -> Optional[Span]:
    return trace.get_current_span()


def get_trace_id() -> Optional[str]:
    """Get the current trace ID as a hex string.

    Returns:
        Trace ID string or None
    """
    span = get_current_span()
    if span and span.get_span_context().is_valid:
        return format(span.get_span_context().trace_id, "032x")
    return None


def get_span_id() -> Optional[str]:
    span = get_current_span()
    if span and span.get_span_context().is_valid:
        return format(span.get_span_context().span_id, "016x")
    return None


@contextmanager
def create_span(
    name: str,
    attributes: Optional[dict] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
):
    """Create a new span as a context manager.

    Args:
        name: Span name
        attributes: Optional span attributes
        kind: Span kind

    Yields:
        The created span
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(
        name,
        kind=kind,
        attributes=attributes or {},
    ) as span:
        yield span


def add_span_attributes(attributes: dict) -> None:
    """Add attributes to the current span."""
    span = get_current_span()
    if span:
        for key, value in attributes.items():
            span.set_attribute(key, value)


def add_span_event(name: str, attributes: Optional[dict] = None) -> None:
    """Record a timestamped event, such as a progress update, on the current span."""
    span = get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})


def record_exception(exception: BaseException, attributes: Optional[dict] = None) -> None:
    """Record an exception on the current span and mark it failed.

    Args:
        exception: The exception to record
        attributes: Optional additional attributes
    """
    span = get_current_span()
    if span:
        span.record_exception(exception, attributes=attributes)
        span.set_status(Status(StatusCode.ERROR, str(exception)))


def shutdown_tracing() -> None:
    """Flush pending spans and release the provider.

    Safe to call when tracing was never set up.
    """
    global _provider, _tracer
    if _provider is None:
        return
    _provider.shutdown()
    _provider = None
    _tracer = None
    logger.info("Tracing shutdown complete")
