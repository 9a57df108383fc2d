"""Tests for the upload and streaming services.

**Feature: vodstream, Property 11: Upload Lifecycle**
"""

import asyncio
from pathlib import Path

import pytest

from conftest import FakeTranscodeEngine
from vodstream.modules.media import service as service_module
from vodstream.modules.media.errors import (
    ConfigurationFailure,
    InvalidInput,
    MediaServiceError,
    NotFound,
    TranscodeFailure,
    UnsupportedMediaType,
)
from vodstream.modules.media.models import AssetRegistry, AssetStatus, MediaAsset
from vodstream.modules.media.service import (
    MANIFEST_MEDIA_TYPE,
    SEGMENT_MEDIA_TYPE,
    StreamingService,
    UploadService,
)
from vodstream.modules.media.store import MediaStore
from vodstream.modules.transcoding.schemas import TranscodeConfig
from vodstream.modules.transcoding.service import TranscodeOrchestrator


@pytest.fixture
def services(tmp_path: Path):
    def _build(mode: str = "ok", wait: bool = True, max_bytes: int = 1024 * 1024):
        store = MediaStore(tmp_path / "in", tmp_path / "m3u8s")
        registry = AssetRegistry()
        orchestrator = TranscodeOrchestrator(
            engine_factory=lambda: FakeTranscodeEngine(mode),
            store=store,
            registry=registry,
            default_config=TranscodeConfig(),
            timeout_seconds=5,
        )
        built.append(orchestrator)
        upload = UploadService(store, registry, orchestrator, max_upload_bytes=max_bytes, wait_for_transcode=wait)
        return upload, StreamingService(store, registry), registry

    built = []
    yield _build
    for orchestrator in built:
        orchestrator.shutdown()


class TestUploadService:
    @pytest.mark.asyncio
    async def test_valid_upload_becomes_ready(self, services, valid_mp4_bytes) -> None:
        """**Feature: vodstream, Property 11: Upload Lifecycle**

        A valid upload SHALL walk UPLOADING, VALIDATING, TRANSCODING, READY
        in that order and be resolvable for streaming.
        """
        upload, streaming, registry = services()

        asset = await upload.handle_upload("clip.mp4", valid_mp4_bytes)

        assert asset.history == [
            AssetStatus.UPLOADING,
            AssetStatus.VALIDATING,
            AssetStatus.TRANSCODING,
            AssetStatus.READY,
        ]
        assert asset.media_type == "video/mp4"
        assert asset.source_size == len(valid_mp4_bytes)
        assert registry.get(asset.id) is asset

        path, media_type = streaming.resolve(asset.id, "index.m3u8")
        assert media_type == MANIFEST_MEDIA_TYPE
        assert path.is_file()
        assert streaming.resolve(asset.id, "index0.ts")[1] == SEGMENT_MEDIA_TYPE

    @pytest.mark.asyncio
    async def test_background_mode_returns_transcoding(self, services, valid_mp4_bytes) -> None:
        upload, _, _ = services(wait=False)

        asset = await upload.handle_upload("clip.mp4", valid_mp4_bytes)

        assert AssetStatus.TRANSCODING in asset.history

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [None, b""])
    async def test_missing_payload_fails_before_validation(self, services, data) -> None:
        upload, _, registry = services()

        with pytest.raises(InvalidInput):
            await upload.handle_upload("clip.mp4", data)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_unsupported_type_is_never_registered(self, services) -> None:
        upload, _, registry = services()

        with pytest.raises(UnsupportedMediaType):
            await upload.handle_upload("clip.mp4", b"hello world")
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_size_limit(self, services, valid_mp4_bytes) -> None:
        upload, _, _ = services(max_bytes=8)

        with pytest.raises(InvalidInput):
            await upload.handle_upload("clip.mp4", valid_mp4_bytes)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mode,error_type",
        [("fail", TranscodeFailure), ("configure_fail", ConfigurationFailure)],
    )
    async def test_engine_errors_are_mapped(self, services, valid_mp4_bytes, mode, error_type) -> None:
        upload, streaming, registry = services(mode=mode)

        with pytest.raises(error_type) as exc_info:
            await upload.handle_upload("clip.mp4", valid_mp4_bytes)
        assert exc_info.value.code == "CANT_TRANSCODE_FILE"

        (asset,) = registry.list_assets()
        assert asset.status == AssetStatus.FAILED
        with pytest.raises(NotFound):
            streaming.resolve(asset.id, "index.m3u8")

    @pytest.mark.asyncio
    async def test_unexpected_submit_error_fails_asset(self, services, valid_mp4_bytes, monkeypatch) -> None:
        upload, _, registry = services()

        def broken_submit(asset, config=None):
            raise ValueError("asset in unexpected state")

        monkeypatch.setattr(upload.orchestrator, "submit", broken_submit)

        with pytest.raises(MediaServiceError) as exc_info:
            await upload.handle_upload("clip.mp4", valid_mp4_bytes)

        assert exc_info.value.code == "INTERNAL_ERROR"
        assert exc_info.value.status_code == 500
        (asset,) = registry.list_assets()
        assert asset.status == AssetStatus.FAILED
        assert asset.error == "INTERNAL_ERROR"

    @pytest.mark.asyncio
    async def test_colliding_id_is_internal_error(self, services, valid_mp4_bytes, monkeypatch) -> None:
        upload, _, registry = services()
        existing = registry.register(MediaAsset(id="a" * 32))
        monkeypatch.setattr(service_module, "generate_asset_id", lambda: "a" * 32)

        with pytest.raises(MediaServiceError) as exc_info:
            await upload.handle_upload("clip.mp4", valid_mp4_bytes)

        assert exc_info.value.code == "INTERNAL_ERROR"
        assert registry.get("a" * 32) is existing
        assert existing.status == AssetStatus.UPLOADING


class TestUploadCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_wait_still_finishes_queued_job(self, tmp_path: Path, valid_mp4_bytes) -> None:
        """**Feature: vodstream, Property 11: Upload Lifecycle**

        Cancelling an upload request while its job waits in the queue SHALL
        NOT strand the asset; the job still runs to a terminal status.
        """
        modes = iter(["hang", "ok"])
        store = MediaStore(tmp_path / "in", tmp_path / "m3u8s")
        registry = AssetRegistry()
        orchestrator = TranscodeOrchestrator(
            engine_factory=lambda: FakeTranscodeEngine(next(modes)),
            store=store,
            registry=registry,
            default_config=TranscodeConfig(),
            timeout_seconds=0.5,
            max_workers=1,
        )
        upload = UploadService(store, registry, orchestrator, max_upload_bytes=1024 * 1024)

        async def reach_transcoding(count: int) -> None:
            while len(registry.list_assets(AssetStatus.TRANSCODING)) < count:
                await asyncio.sleep(0.01)

        try:
            first = asyncio.create_task(upload.handle_upload("first.mp4", valid_mp4_bytes))
            await asyncio.wait_for(reach_transcoding(1), timeout=5)
            second = asyncio.create_task(upload.handle_upload("second.mp4", valid_mp4_bytes))
            await asyncio.wait_for(reach_transcoding(2), timeout=5)

            second.cancel()
            with pytest.raises(asyncio.CancelledError):
                await second
            with pytest.raises(TranscodeFailure):
                await first
        finally:
            orchestrator.shutdown(wait=True)

        statuses = sorted(asset.status.value for asset in registry.list_assets())
        assert statuses == ["failed", "ready"]

    @pytest.mark.asyncio
    async def test_cancel_before_submit_marks_failed(self, services, valid_mp4_bytes, monkeypatch) -> None:
        upload, _, registry = services()
        gate = asyncio.Event()

        async def blocked_offload(func, *args):
            await gate.wait()

        monkeypatch.setattr(service_module, "run_in_threadpool", blocked_offload)

        async def registered() -> None:
            while len(registry) == 0:
                await asyncio.sleep(0.01)

        task = asyncio.create_task(upload.handle_upload("clip.mp4", valid_mp4_bytes))
        await asyncio.wait_for(registered(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        (asset,) = registry.list_assets()
        assert asset.status == AssetStatus.FAILED
        assert asset.error == "CANCELLED"


class TestStreamingService:
    def test_unknown_status(self, services) -> None:
        _, streaming, _ = services()

        with pytest.raises(NotFound):
            streaming.get_status("0" * 32)
        with pytest.raises(NotFound):
            streaming.get_status("../etc")

    @pytest.mark.parametrize("name", ["indexABC.ts", "index.ts", "../index.m3u8", "index1.mp4"])
    def test_grammar_violations(self, services, name: str) -> None:
        _, streaming, _ = services()

        with pytest.raises(NotFound):
            streaming.resolve("0" * 32, name)
