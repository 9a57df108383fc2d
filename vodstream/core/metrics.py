"""Prometheus metrics for the ingestion and streaming pipeline.

Exposes HTTP, upload, transcode and streaming metrics on a private registry
served by the /metrics endpoint.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "vodstream_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 300.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Upload Metrics
# ============================================
UPLOADS_TOTAL = Counter(
    "uploads_total",
    "Total upload attempts by outcome code",
    ["result"],
    registry=REGISTRY,
)

UPLOAD_BYTES = Histogram(
    "upload_bytes",
    "Size of accepted uploads in bytes",
    buckets=[1e5, 1e6, 1e7, 5e7, 1e8, 5e8, 1e9, 2e9],
    registry=REGISTRY,
)


# ============================================
# Transcode Metrics
# ============================================
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Total transcode jobs by terminal status",
    ["status"],
    registry=REGISTRY,
)

TRANSCODE_DURATION_SECONDS = Histogram(
    "transcode_duration_seconds",
    "Wall-clock duration of transcode jobs",
    buckets=[1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0],
    registry=REGISTRY,
)

TRANSCODE_JOBS_IN_PROGRESS = Gauge(
    "transcode_jobs_in_progress",
    "Number of transcode jobs currently running",
    registry=REGISTRY,
)

TRANSCODE_PROGRESS_PERCENT = Gauge(
    "transcode_progress_percent",
    "Last reported progress of a running transcode job",
    ["asset_id"],
    registry=REGISTRY,
)


# ============================================
# Asset / Streaming Metrics
# ============================================
ASSETS_BY_STATUS = Gauge(
    "assets_by_status",
    "Number of registered assets per lifecycle status",
    ["status"],
    registry=REGISTRY,
)

STREAM_REQUESTS_TOTAL = Counter(
    "stream_requests_total",
    "Streaming responder requests",
    ["resource", "status"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format.

    Returns:
        bytes: Prometheus-formatted metrics
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
