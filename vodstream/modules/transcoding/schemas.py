"""Pydantic schemas for transcoding jobs."""

import math
import re

from pydantic import BaseModel, Field, field_validator

from vodstream.modules.transcoding.models import ManifestRetention

FRAME_PATTERN = re.compile(r"^(\d{2,5})x(\d{2,5})$")


class TranscodeConfig(BaseModel):
    """Configuration for one HLS transcode job."""
    frame: str = Field(default="640x360", description="Output frame as WIDTHxHEIGHT")
    segment_duration: int = Field(default=5, ge=1, le=60, description="HLS segment duration in seconds")
    retention: ManifestRetention = Field(
        default=ManifestRetention.UNLIMITED,
        description="Keep every segment or only a sliding window",
    )
    window_size: int = Field(default=6, ge=1, description="Segments kept when retention is a sliding window")

    model_config = {"frozen": True}

    @field_validator("frame")
    @classmethod
    def _validate_frame(cls, value: str) -> str:
        match = FRAME_PATTERN.match(value)
        if not match:
            raise ValueError(f"frame must look like WIDTHxHEIGHT, got {value!r}")
        width, height = int(match.group(1)), int(match.group(2))
        if width % 2 or height % 2:
            # libx264 rejects odd dimensions
            raise ValueError(f"frame dimensions must be even, got {value!r}")
        return value

    @property
    def dimensions(self) -> tuple[int, int]:
        return get_frame_dimensions(self.frame)

    @property
    def aspect_ratio(self) -> str:
        """Aspect ratio in ffmpeg's ``W:H`` notation, reduced."""
        width, height = self.dimensions
        divisor = math.gcd(width, height)
        return f"{width // divisor}:{height // divisor}"

    @property
    def list_size(self) -> int:
        """Value for ``-hls_list_size``; 0 means every segment is kept."""
        if self.retention == ManifestRetention.UNLIMITED:
            return 0
        return self.window_size


def get_frame_dimensions(frame: str) -> tuple[int, int]:
    """Get width and height for a ``WIDTHxHEIGHT`` frame string.

    Args:
        frame: Frame string such as ``640x360``

    Returns:
        Tuple of (width, height)

    Raises:
        ValueError: If the string does not match the frame grammar
    """
    match = FRAME_PATTERN.match(frame)
    if not match:
        raise ValueError(f"Invalid frame: {frame!r}")
    return int(match.group(1)), int(match.group(2))


def expected_segment_count(duration: float, segment_duration: float) -> int:
    """Number of segments a manifest should list for a source of ``duration``.

    Keyframes are forced on every segment boundary, so a source whose
    duration is an exact multiple of the segment duration has no trailing
    short segment.

    Args:
        duration: Source duration in seconds
        segment_duration: Target segment duration in seconds

    Returns:
        ceil(duration / segment_duration), at least 1 for a non-empty source
    """
    if segment_duration <= 0:
        raise ValueError("segment_duration must be positive")
    if duration <= 0:
        return 0
    return max(1, math.ceil(duration / segment_duration))
