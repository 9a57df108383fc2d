"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from vodstream.core.config import Settings, settings as default_settings
from vodstream.core.logging import log_warning, setup_logging
from vodstream.core.metrics import UPLOADS_TOTAL, get_content_type, get_metrics, set_app_info
from vodstream.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
)
from vodstream.core.tracing import setup_tracing, shutdown_tracing
from vodstream.modules.media.errors import InvalidInput, MediaServiceError
from vodstream.modules.media.models import AssetRegistry
from vodstream.modules.media.router import router as media_router
from vodstream.modules.media.schemas import HealthResponse
from vodstream.modules.media.service import StreamingService, UploadService
from vodstream.modules.media.store import MediaStore
from vodstream.modules.transcoding.engine import TranscodeEngine
from vodstream.modules.transcoding.ffmpeg import FFmpegEngine
from vodstream.modules.transcoding.service import TranscodeOrchestrator

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/upload"


async def media_error_handler(request: Request, exc: MediaServiceError) -> PlainTextResponse:
    """Answer with the error's short code; details stay in the logs."""
    return PlainTextResponse(exc.code, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    """Treat a malformed upload form as a missing file.

    A text value in the ``uploadFile`` field fails FastAPI's UploadFile
    validation; the upload contract answers that with INVALID_FILE rather
    than a JSON 422.
    """
    if request.url.path != UPLOAD_PATH:
        return await request_validation_exception_handler(request, exc)

    error = InvalidInput()
    UPLOADS_TOTAL.labels(result=error.code).inc()
    log_warning(logger, "Upload form rejected", errors=str(exc.errors()))
    return PlainTextResponse(error.code, status_code=error.status_code)


def create_app(
    settings: Optional[Settings] = None,
    engine_factory: Optional[Callable[[], TranscodeEngine]] = None,
) -> FastAPI:
    """Build the application and its services from explicit settings.

    Args:
        settings: Application settings; the environment-loaded defaults
            are used when omitted
        engine_factory: Returns a fresh transcoding engine per job;
            defaults to FFmpegEngine built from settings

    Returns:
        Configured FastAPI application
    """
    settings = settings or default_settings
    environment = "development" if settings.DEBUG else "production"

    setup_logging(
        level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
        json_format=settings.LOG_JSON,
        include_stack_trace=True,
    )

    if settings.TRACING_ENABLED:
        setup_tracing(
            service_name=settings.PROJECT_NAME,
            service_version=settings.VERSION,
            environment=environment,
            otlp_endpoint=settings.OTLP_ENDPOINT,
            enable_console_export=settings.DEBUG,
        )

    set_app_info(version=settings.VERSION, environment=environment)

    if engine_factory is None:
        def engine_factory() -> TranscodeEngine:
            return FFmpegEngine(ffmpeg_path=settings.FFMPEG_PATH, ffprobe_path=settings.FFPROBE_PATH)

    store = MediaStore(settings.upload_root, settings.media_root)
    registry = AssetRegistry()
    orchestrator = TranscodeOrchestrator(
        engine_factory=engine_factory,
        store=store,
        registry=registry,
        default_config=settings.transcode_config(),
        timeout_seconds=settings.TRANSCODE_TIMEOUT_SECONDS,
        max_workers=settings.TRANSCODE_MAX_WORKERS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        orchestrator.shutdown(wait=True)
        shutdown_tracing()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Upload MP4 videos, transcode them to HLS and stream the result.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.state.orchestrator = orchestrator
    app.state.upload_service = UploadService(
        store=store,
        registry=registry,
        orchestrator=orchestrator,
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
        wait_for_transcode=settings.WAIT_FOR_TRANSCODE,
    )
    app.state.streaming_service = StreamingService(store=store, registry=registry)

    # Add monitoring middleware
    app.add_middleware(RequestLoggingMiddleware, log_request_body=False)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(MediaServiceError, media_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health", tags=["health"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Liveness check."""
        return HealthResponse(status="healthy")

    @app.get("/metrics", tags=["health"], include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=get_metrics(), media_type=get_content_type())

    app.include_router(media_router)
    return app


app = create_app()
