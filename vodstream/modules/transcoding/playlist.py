"""HLS manifest helpers."""

from pathlib import Path


def parse_manifest_segments(text: str) -> list[str]:
    """Return the segment URIs of a media playlist in playback order.

    Tag lines (``#EXT...``) and comments are skipped; every other non-blank
    line is a segment URI.
    """
    segments = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        segments.append(line)
    return segments


def read_manifest_segments(manifest_path: Path) -> list[str]:
    """Read a manifest from disk and return its segment URIs.

    Raises:
        OSError: If the manifest cannot be read
    """
    return parse_manifest_segments(Path(manifest_path).read_text(encoding="utf-8"))


def is_complete_manifest(text: str) -> bool:
    """Whether a playlist has been closed with ``#EXT-X-ENDLIST``."""
    return any(line.strip() == "#EXT-X-ENDLIST" for line in text.splitlines())
