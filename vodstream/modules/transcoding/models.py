"""Value types for transcoding jobs."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class ManifestRetention(str, Enum):
    """Which segments the manifest keeps listing as new ones are written."""
    UNLIMITED = "unlimited"
    SLIDING_WINDOW = "sliding_window"


@dataclass(frozen=True)
class TranscodeProgress:
    """One progress notification emitted by an engine run.

    ``percent`` is only known when the source duration could be probed;
    ``elapsed_seconds`` is the media time written so far.
    """
    elapsed_seconds: float
    percent: Optional[float] = None
    speed: Optional[str] = None

    def as_attributes(self) -> dict:
        """Span event attributes; unknown fields are omitted."""
        attributes = {"transcode.elapsed_seconds": self.elapsed_seconds}
        if self.percent is not None:
            attributes["transcode.percent"] = self.percent
        if self.speed is not None:
            attributes["transcode.speed"] = self.speed
        return attributes


@dataclass
class TranscodeResult:
    """Successful outcome of an engine run."""
    manifest_path: Path
    segments: list[str] = field(default_factory=list)
    duration: float = 0.0
    wall_seconds: float = 0.0
