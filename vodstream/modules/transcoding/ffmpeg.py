"""FFmpeg HLS transcoding engine.

Builds an ffmpeg command that writes ``index.m3u8`` plus ``index<N>.ts``
segments, runs it as a subprocess and turns its stderr into progress
events.
"""

import json
import logging
import re
import shutil
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Optional, Union

from vodstream.modules.transcoding.engine import (
    ConfigurationError,
    TranscodeEngine,
    TranscodeError,
    TranscodeRun,
)
from vodstream.modules.transcoding.models import (
    ManifestRetention,
    TranscodeProgress,
    TranscodeResult,
)
from vodstream.modules.transcoding.playlist import read_manifest_segments
from vodstream.modules.transcoding.schemas import TranscodeConfig

logger = logging.getLogger(__name__)

SEGMENT_FILENAME_TEMPLATE = "index%d.ts"

# Regex to parse 'time=00:00:00.00' and 'speed=1.5x' from ffmpeg stats lines
TIME_REGEX = re.compile(r"time=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
SPEED_REGEX = re.compile(r"speed=\s*([\d.]+x)")
DURATION_REGEX = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")

DIAGNOSTIC_TAIL_LINES = 20


def _to_seconds(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_duration_line(line: str) -> Optional[float]:
    """Extract the input duration from an ffmpeg header line."""
    match = DURATION_REGEX.search(line)
    if not match:
        return None
    return _to_seconds(*match.groups())


def parse_progress_line(line: str, duration: Optional[float] = None) -> Optional[TranscodeProgress]:
    """Parse one ffmpeg stats line into a progress event.

    Args:
        line: A line of ffmpeg stderr output
        duration: Source duration in seconds, if known

    Returns:
        TranscodeProgress, or None if the line carries no timing
    """
    match = TIME_REGEX.search(line)
    if not match:
        return None

    elapsed = _to_seconds(*match.groups())
    percent = None
    if duration and duration > 0:
        percent = round(min(100.0, max(0.0, elapsed / duration * 100.0)), 2)

    speed_match = SPEED_REGEX.search(line)
    return TranscodeProgress(
        elapsed_seconds=elapsed,
        percent=percent,
        speed=speed_match.group(1) if speed_match else None,
    )


class FFmpegEngine(TranscodeEngine):
    """FFmpeg-based HLS packager.

    One instance handles one job: configure it, then run it once.
    """

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """Initialize engine.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.source_path: Optional[Path] = None
        self.manifest_path: Optional[Path] = None
        self.config: Optional[TranscodeConfig] = None
        self.duration: Optional[float] = None
        self._started = False

    def configure(
        self,
        source_path: Union[str, Path],
        dest_manifest_path: Union[str, Path],
        config: TranscodeConfig,
    ) -> None:
        source = Path(source_path)
        manifest = Path(dest_manifest_path)

        if not source.is_file():
            raise ConfigurationError(f"Source file does not exist: {source}")
        if not manifest.parent.is_dir():
            raise ConfigurationError(f"Output directory does not exist: {manifest.parent}")
        if shutil.which(self.ffmpeg_path) is None:
            raise ConfigurationError(f"ffmpeg binary not found: {self.ffmpeg_path}")

        self.source_path = source
        self.manifest_path = manifest
        self.config = config
        self.duration = self.probe_duration(source)

    def probe_duration(self, input_path: Path) -> Optional[float]:
        """Get the source duration in seconds using ffprobe.

        Returns None when ffprobe is unavailable or cannot read the file;
        progress then falls back to elapsed media time only.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(input_path),
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=30)
            return float(json.loads(result.stdout)["format"]["duration"])
        except (OSError, subprocess.SubprocessError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"ffprobe could not read duration of {input_path}: {e}")
            return None

    def build_command(self) -> list[str]:
        """Build the ffmpeg HLS command for the configured job.

        Returns:
            FFmpeg command as list of arguments
        """
        if self.config is None or self.source_path is None or self.manifest_path is None:
            raise ConfigurationError("Engine is not configured")

        config = self.config
        width, height = config.dimensions
        segment_pattern = self.manifest_path.parent / SEGMENT_FILENAME_TEMPLATE

        cmd = [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", str(self.source_path),
            # Video settings
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-vf", f"scale={width}:{height}:force_original_aspect_ratio=decrease,pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
            "-aspect", config.aspect_ratio,
            # Keyframe on every segment boundary so segments are cut exactly
            "-force_key_frames", f"expr:gte(t,n_forced*{config.segment_duration})",
            "-sc_threshold", "0",
            # Audio settings
            "-c:a", "aac",
            "-b:a", "128k",
            "-ar", "48000",
            "-ac", "2",
            # Output format
            "-f", "hls",
            "-hls_time", str(config.segment_duration),
            "-hls_list_size", str(config.list_size),
            "-hls_segment_filename", str(segment_pattern),
        ]

        if config.retention == ManifestRetention.SLIDING_WINDOW:
            cmd.extend(["-hls_flags", "delete_segments"])
        else:
            cmd.extend(["-hls_playlist_type", "vod"])

        cmd.append(str(self.manifest_path))
        return cmd

    def run(self) -> TranscodeRun:
        cmd = self.build_command()
        if self._started:
            raise ConfigurationError("Engine instance has already been run")
        self._started = True

        started_at = time.monotonic()
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1,
            )
        except OSError as e:
            run = TranscodeRun()
            run.fail(TranscodeError(f"Failed to start ffmpeg: {e}", diagnostic=str(e)))
            return run

        run = TranscodeRun(cancel=process.kill)
        reader = threading.Thread(
            target=self._pump,
            args=(process, run, started_at),
            name=f"ffmpeg-{self.manifest_path.parent.name}",
            daemon=True,
        )
        reader.start()
        return run

    def _pump(self, process: subprocess.Popen, run: TranscodeRun, started_at: float) -> None:
        """Read ffmpeg output until exit and resolve the run."""
        tail: deque[str] = deque(maxlen=DIAGNOSTIC_TAIL_LINES)
        duration = self.duration

        try:
            for line in process.stdout:
                line = line.rstrip()
                if not line:
                    continue
                tail.append(line)

                if duration is None:
                    duration = parse_duration_line(line)

                event = parse_progress_line(line, duration)
                if event is not None:
                    run.publish(event)

            returncode = process.wait()
        except (OSError, ValueError) as e:
            process.kill()
            run.fail(TranscodeError(f"Lost contact with ffmpeg: {e}", diagnostic="\n".join(tail)))
            return

        diagnostic = "\n".join(tail)
        if returncode != 0:
            run.fail(TranscodeError(f"ffmpeg exited with code {returncode}", diagnostic=diagnostic))
            return

        try:
            segments = read_manifest_segments(self.manifest_path)
        except OSError as e:
            run.fail(TranscodeError(f"ffmpeg produced no readable manifest: {e}", diagnostic=diagnostic))
            return

        run.succeed(TranscodeResult(
            manifest_path=self.manifest_path,
            segments=segments,
            duration=duration or 0.0,
            wall_seconds=time.monotonic() - started_at,
        ))
