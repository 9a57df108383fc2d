"""Upload and streaming services.

UploadService turns one uploaded payload into a registered asset and a
transcode job. StreamingService maps stream requests for ready assets to
files on disk.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from starlette.concurrency import run_in_threadpool

from vodstream.core.logging import bind_asset_id, log_error, log_info, log_warning
from vodstream.core.metrics import STREAM_REQUESTS_TOTAL, UPLOAD_BYTES, UPLOADS_TOTAL
from vodstream.modules.media.errors import (
    ConfigurationFailure,
    InvalidInput,
    MediaServiceError,
    NotFound,
    TranscodeFailure,
)
from vodstream.modules.media.identity import generate_asset_id, is_valid_asset_id
from vodstream.modules.media.models import AssetRegistry, AssetStatus, MediaAsset
from vodstream.modules.media.store import (
    RESOURCE_MANIFEST,
    MediaStore,
    classify_resource,
)
from vodstream.modules.media.validator import ensure_supported, extension_for
from vodstream.modules.transcoding.engine import ConfigurationError, TranscodingError
from vodstream.modules.transcoding.service import TranscodeOrchestrator

logger = logging.getLogger(__name__)

MANIFEST_MEDIA_TYPE = "application/x-mpegURL"
SEGMENT_MEDIA_TYPE = "video/MP2T"

# Error recorded on assets whose upload request went away mid-flight
CANCELLED = "CANCELLED"


class UploadService:
    """Accepts uploads and drives them through validation into transcoding."""

    def __init__(
        self,
        store: MediaStore,
        registry: AssetRegistry,
        orchestrator: TranscodeOrchestrator,
        max_upload_bytes: int,
        wait_for_transcode: bool = True,
    ):
        self.store = store
        self.registry = registry
        self.orchestrator = orchestrator
        self.max_upload_bytes = max_upload_bytes
        self.wait_for_transcode = wait_for_transcode

    async def handle_upload(self, filename: Optional[str], data: Optional[bytes]) -> MediaAsset:
        """Validate, stage and transcode an uploaded file.

        Args:
            filename: Client-supplied filename, used for logging only
            data: Raw payload, or None if the form field was missing

        Returns:
            The asset, READY when waiting for the transcode, otherwise
            still TRANSCODING

        Raises:
            MediaServiceError: Typed failure carrying the response code
        """
        asset = MediaAsset(id=generate_asset_id())
        with bind_asset_id(asset.id):
            try:
                asset = await self._accept(asset, filename, data)
            except MediaServiceError as e:
                self._reject(asset, filename, e)
                raise
            except asyncio.CancelledError:
                # A submitted job is shielded and finishes on its own;
                # anything earlier would otherwise stay non-terminal
                if asset.status != AssetStatus.TRANSCODING:
                    self._mark_failed(asset, CANCELLED)
                log_warning(logger, f"Upload {asset.id} cancelled in {asset.status.value}", asset_id=asset.id)
                raise
            except Exception as e:
                error = MediaServiceError(f"Unexpected upload failure: {e}")
                self._reject(asset, filename, error, cause=e)
                raise error from e

        UPLOADS_TOTAL.labels(result="SUCCESS" if asset.is_ready else "PROCESSING").inc()
        return asset

    async def _accept(self, asset: MediaAsset, filename: Optional[str], data: Optional[bytes]) -> MediaAsset:
        if not data:
            raise InvalidInput("Upload is missing or empty")
        log_info(logger, f"Received upload {asset.id}", asset_id=asset.id, size=len(data), upload_filename=filename)

        self.registry.transition(asset, AssetStatus.VALIDATING)
        if len(data) > self.max_upload_bytes:
            raise InvalidInput(f"Upload exceeds {self.max_upload_bytes} bytes")
        asset.media_type = ensure_supported(data)
        extension = extension_for(asset.media_type)
        asset.source_size = len(data)

        self.registry.register(asset)
        asset.source_path = await run_in_threadpool(self.store.stage_upload, asset.id, extension, data)
        asset.output_dir = await run_in_threadpool(self.store.ensure_output_dir, asset.id)
        UPLOAD_BYTES.observe(len(data))

        self.registry.transition(asset, AssetStatus.TRANSCODING)
        try:
            future = self.orchestrator.submit(asset)
        except RuntimeError as e:
            raise TranscodeFailure(f"Transcode queue unavailable: {e}") from e
        if not self.wait_for_transcode:
            return asset

        try:
            await asyncio.shield(asyncio.wrap_future(future))
        except ConfigurationError as e:
            raise ConfigurationFailure(str(e), diagnostic=e.diagnostic) from e
        except TranscodingError as e:
            raise TranscodeFailure(str(e), diagnostic=e.diagnostic) from e
        except Exception as e:
            raise TranscodeFailure(str(e)) from e
        return asset

    def _reject(
        self,
        asset: MediaAsset,
        filename: Optional[str],
        error: MediaServiceError,
        cause: Optional[BaseException] = None,
    ) -> None:
        self._mark_failed(asset, error.code)
        UPLOADS_TOTAL.labels(result=error.code).inc()
        log_error(
            logger,
            f"Upload {asset.id} rejected with {error.code}",
            exception=(cause or error) if error.status_code >= 500 else None,
            asset_id=asset.id,
            upload_filename=filename,
        )

    def _mark_failed(self, asset: MediaAsset, code: str) -> None:
        # The orchestrator already failed the asset for transcode errors
        if not asset.is_terminal:
            self.registry.transition(asset, AssetStatus.FAILED, error=code)


class StreamingService:
    """Resolves stream requests for ready assets."""

    def __init__(self, store: MediaStore, registry: AssetRegistry):
        self.store = store
        self.registry = registry

    def resolve(self, asset_id: str, resource_name: str) -> tuple[Path, str]:
        """Return the file path and media type for a stream resource.

        Raises:
            NotFound: For bad names, unknown or unready assets and missing files
        """
        kind = classify_resource(resource_name)
        try:
            if kind is None or not is_valid_asset_id(asset_id):
                raise NotFound(f"Invalid stream resource {asset_id!r}/{resource_name!r}")
            if self.registry.get_ready(asset_id) is None:
                raise NotFound(f"Asset {asset_id} is not ready")
            path = self.store.resolve(asset_id, resource_name)
        except NotFound:
            STREAM_REQUESTS_TOTAL.labels(resource=kind or "invalid", status="not_found").inc()
            raise

        STREAM_REQUESTS_TOTAL.labels(resource=kind, status="ok").inc()
        media_type = MANIFEST_MEDIA_TYPE if kind == RESOURCE_MANIFEST else SEGMENT_MEDIA_TYPE
        return path, media_type

    def get_status(self, asset_id: str) -> MediaAsset:
        asset = self.registry.get(asset_id) if is_valid_asset_id(asset_id) else None
        if asset is None:
            raise NotFound(f"Unknown asset {asset_id!r}")
        return asset
