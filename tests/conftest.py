"""Shared fixtures: temporary settings, a fake transcoding engine and an app client."""

import threading
from pathlib import Path
from typing import Optional, Union

import pytest
from fastapi.testclient import TestClient

from vodstream.core.config import Settings
from vodstream.main import create_app
from vodstream.modules.transcoding.engine import (
    ConfigurationError,
    TranscodeEngine,
    TranscodeError,
    TranscodeRun,
)
from vodstream.modules.transcoding.models import TranscodeProgress, TranscodeResult
from vodstream.modules.transcoding.schemas import TranscodeConfig, expected_segment_count

# Minimal ISO-BMFF header: 24-byte ftyp box (major brand mp42) plus a free box
VALID_MP4_BYTES = (
    b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom"
    + b"\x00\x00\x00\x08free"
    + b"\x00" * 64
)

TS_PACKET = b"\x47" + b"\x00" * 187


def render_manifest(
    segment_names: list[str],
    segment_duration: int,
    durations: list[float],
    closed: bool = True,
) -> str:
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{segment_duration}",
        "#EXT-X-MEDIA-SEQUENCE:0",
        "#EXT-X-PLAYLIST-TYPE:VOD",
    ]
    for name, length in zip(segment_names, durations):
        lines.append(f"#EXTINF:{length:.6f},")
        lines.append(name)
    if closed:
        lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


class FakeTranscodeEngine(TranscodeEngine):
    """In-process engine that writes a plausible HLS layout without ffmpeg.

    Modes:
        ok: write manifest and ceil(D/S) segments, then succeed
        fail: emit one progress event, then fail with a diagnostic
        configure_fail: raise ConfigurationError from configure()
        hang: never finish until cancelled
        missing_segment: succeed but leave the last segment unwritten
        unclosed: succeed but never write #EXT-X-ENDLIST
    """

    def __init__(self, mode: str = "ok", duration: float = 12.0):
        self.mode = mode
        self.duration = duration
        self.source_path: Optional[Path] = None
        self.manifest_path: Optional[Path] = None
        self.config: Optional[TranscodeConfig] = None
        self.cancelled = threading.Event()

    def configure(
        self,
        source_path: Union[str, Path],
        dest_manifest_path: Union[str, Path],
        config: TranscodeConfig,
    ) -> None:
        if self.mode == "configure_fail":
            raise ConfigurationError("fake engine cannot be initialized")
        if not Path(source_path).is_file():
            raise ConfigurationError(f"Source file does not exist: {source_path}")
        self.source_path = Path(source_path)
        self.manifest_path = Path(dest_manifest_path)
        self.config = config

    def run(self) -> TranscodeRun:
        run = TranscodeRun(cancel=self.cancelled.set)

        if self.mode == "hang":
            return run
        if self.mode == "fail":
            run.publish(TranscodeProgress(elapsed_seconds=1.0, percent=10.0))
            run.fail(TranscodeError("fake engine exited with code 1", diagnostic="moov atom not found"))
            return run

        segment_duration = self.config.segment_duration
        count = expected_segment_count(self.duration, segment_duration)
        names = [f"index{i}.ts" for i in range(count)]
        lengths = [
            min(segment_duration, self.duration - i * segment_duration) for i in range(count)
        ]

        written = names[:-1] if self.mode == "missing_segment" else names
        for i, name in enumerate(written):
            (self.manifest_path.parent / name).write_bytes(TS_PACKET * 4)
            elapsed = min(self.duration, (i + 1) * segment_duration)
            run.publish(TranscodeProgress(
                elapsed_seconds=elapsed,
                percent=round(elapsed / self.duration * 100.0, 2),
                speed="4.0x",
            ))
        self.manifest_path.write_text(
            render_manifest(names, segment_duration, lengths, closed=self.mode != "unclosed"),
            encoding="utf-8",
        )

        run.succeed(TranscodeResult(
            manifest_path=self.manifest_path,
            segments=names,
            duration=self.duration,
        ))
        return run


def make_settings(root: Path, **overrides) -> Settings:
    values = {
        "UPLOAD_ROOT": str(root / "in"),
        "MEDIA_ROOT": str(root / "m3u8s"),
        "TRACING_ENABLED": False,
        "TRANSCODE_TIMEOUT_SECONDS": 5.0,
        "TRANSCODE_MAX_WORKERS": 2,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def valid_mp4_bytes() -> bytes:
    return VALID_MP4_BYTES


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def make_client(tmp_path: Path):
    """Factory building a TestClient around an app with a fake engine."""
    clients = []

    def _make(mode: str = "ok", duration: float = 12.0, **overrides) -> TestClient:
        settings = make_settings(tmp_path, **overrides)
        app = create_app(settings, engine_factory=lambda: FakeTranscodeEngine(mode, duration))
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
