"""Transcode job orchestration.

Runs engine jobs on a worker pool, turns their progress into asset updates,
metrics and subscriber callbacks, and flips the asset to ready only after
the engine succeeded and its output was verified.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from vodstream.core.logging import bind_asset_id, log_error, log_info, log_warning
from vodstream.core.metrics import (
    TRANSCODE_DURATION_SECONDS,
    TRANSCODE_JOBS_IN_PROGRESS,
    TRANSCODE_JOBS_TOTAL,
    TRANSCODE_PROGRESS_PERCENT,
)
from vodstream.core.tracing import add_span_attributes, add_span_event, create_span
from vodstream.modules.media.errors import IncompleteOutput
from vodstream.modules.media.models import AssetRegistry, AssetStatus, MediaAsset
from vodstream.modules.media.store import MediaStore
from vodstream.modules.transcoding.engine import (
    TranscodeEngine,
    TranscodeError,
    TranscodeRun,
    TranscodingError,
)
from vodstream.modules.transcoding.models import ManifestRetention, TranscodeProgress
from vodstream.modules.transcoding.schemas import TranscodeConfig

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, TranscodeProgress], None]


def failure_detail(error: TranscodingError) -> str:
    """Message plus engine diagnostic, as stored on a failed asset."""
    message = str(error)
    if not error.diagnostic or error.diagnostic == message:
        return message
    return f"{message}\n{error.diagnostic}"


class TranscodeOrchestrator:
    """Runs transcode jobs for assets on a bounded thread pool.

    Jobs are never retried. A failed job leaves the asset in FAILED with the
    engine's message and diagnostic, and re-raises the error through the
    returned future.
    """

    def __init__(
        self,
        engine_factory: Callable[[], TranscodeEngine],
        store: MediaStore,
        registry: AssetRegistry,
        default_config: Optional[TranscodeConfig] = None,
        timeout_seconds: float = 0,
        max_workers: int = 2,
    ):
        """Initialize orchestrator.

        Args:
            engine_factory: Returns a fresh engine for each job
            store: Media store used to locate and verify output
            registry: Registry that owns asset status changes
            default_config: Config used when submit() gets none
            timeout_seconds: Per-job deadline; 0 disables it
            max_workers: Concurrent transcode jobs
        """
        self.engine_factory = engine_factory
        self.store = store
        self.registry = registry
        self.default_config = default_config or TranscodeConfig()
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="transcode")
        self._subscribers: list[ProgressCallback] = []
        self._subscribers_lock = threading.Lock()

    def subscribe(self, callback: ProgressCallback) -> None:
        """Register a callback invoked with (asset_id, progress) per event."""
        with self._subscribers_lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        with self._subscribers_lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def submit(self, asset: MediaAsset, config: Optional[TranscodeConfig] = None) -> "Future[MediaAsset]":
        """Queue a transcode job for an asset already in TRANSCODING.

        Returns:
            Future resolving to the READY asset, or raising the
            TranscodingError that failed it
        """
        if asset.status != AssetStatus.TRANSCODING:
            raise ValueError(f"Asset {asset.id} is {asset.status.value}, expected transcoding")

        # Carry the request's correlation id into the worker thread
        ctx = contextvars.copy_context()
        return self._executor.submit(ctx.run, self._run_job, asset, config or self.default_config)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _publish(self, asset: MediaAsset, event: TranscodeProgress) -> None:
        if event.percent is not None:
            asset.report_progress(event.percent)
            TRANSCODE_PROGRESS_PERCENT.labels(asset_id=asset.id).set(event.percent)
        add_span_event("transcode.progress", event.as_attributes())

        logger.debug(
            f"Transcode progress for {asset.id}: {event.elapsed_seconds:.2f}s",
            extra={"asset_id": asset.id, "percent": event.percent, "speed": event.speed},
        )

        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(asset.id, event)
            except Exception as e:
                log_warning(logger, f"Progress subscriber failed for {asset.id}: {e}", asset_id=asset.id)

    def _run_job(self, asset: MediaAsset, config: TranscodeConfig) -> MediaAsset:
        started_at = time.monotonic()
        run: Optional[TranscodeRun] = None
        TRANSCODE_JOBS_IN_PROGRESS.inc()
        TRANSCODE_PROGRESS_PERCENT.labels(asset_id=asset.id).set(0)

        with bind_asset_id(asset.id), create_span("transcode.job", attributes={"asset.id": asset.id}):
            add_span_attributes({
                "transcode.frame": config.frame,
                "transcode.segment_duration": config.segment_duration,
                "transcode.retention": config.retention.value,
            })
            try:
                engine = self.engine_factory()
                engine.configure(asset.source_path, self.store.manifest_path(asset.id), config)
                run = engine.run()

                for event in run.progress(timeout=self.timeout_seconds or None):
                    self._publish(asset, event)

                result = run.completion.result()
                try:
                    segments = self.store.verify_output(
                        asset.id,
                        require_endlist=config.retention == ManifestRetention.UNLIMITED,
                    )
                except IncompleteOutput as e:
                    raise TranscodeError(f"Transcode output incomplete: {e}") from e

                self.registry.transition(asset, AssetStatus.READY)
                elapsed = time.monotonic() - started_at
                TRANSCODE_JOBS_TOTAL.labels(status="succeeded").inc()
                TRANSCODE_DURATION_SECONDS.observe(elapsed)
                log_info(
                    logger,
                    f"Transcode finished for {asset.id}",
                    asset_id=asset.id,
                    segments=len(segments),
                    media_duration=result.duration,
                    wall_seconds=round(elapsed, 3),
                )
                return asset

            except TranscodingError as e:
                if run is not None:
                    run.cancel()
                self.registry.transition(asset, AssetStatus.FAILED, error=failure_detail(e))
                TRANSCODE_JOBS_TOTAL.labels(status="failed").inc()
                log_error(
                    logger,
                    f"Transcode failed for {asset.id}",
                    exception=e,
                    asset_id=asset.id,
                    diagnostic=e.diagnostic,
                )
                raise

            except Exception as e:
                self.registry.transition(asset, AssetStatus.FAILED, error=str(e))
                TRANSCODE_JOBS_TOTAL.labels(status="failed").inc()
                log_error(logger, f"Unexpected transcode error for {asset.id}", exception=e, asset_id=asset.id)
                raise

            finally:
                TRANSCODE_JOBS_IN_PROGRESS.dec()
                TRANSCODE_PROGRESS_PERCENT.remove(asset.id)
