"""Upload content validation.

Media types are sniffed from the payload bytes, never from the filename or
the client-declared content type. Only the first 512 bytes are inspected.
"""

import mimetypes

from vodstream.modules.media.errors import UnreadableMediaType, UnsupportedMediaType

SNIFF_LENGTH = 512

OCTET_STREAM = "application/octet-stream"
TEXT_PLAIN = "text/plain; charset=utf-8"
VIDEO_MP4 = "video/mp4"

SUPPORTED_MEDIA_TYPES = frozenset({VIDEO_MP4})

# (prefix, media type), checked in order
MAGIC_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", "application/pdf"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
)

_EXTENSION_FALLBACKS = {
    VIDEO_MP4: ".mp4",
}

# Bytes that never appear in plain text
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)


def _is_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return False
    if data[4:8] != b"ftyp":
        return False
    for start in range(8, box_size, 4):
        if start == 12:
            # Minor version field, not a brand
            continue
        if data[start:start + 3] == b"mp4":
            return True
    return False


def _is_text(data: bytes) -> bool:
    return not any(b in _BINARY_BYTES for b in data)


def detect_content_type(data: bytes) -> str:
    """Sniff the media type of a payload.

    Returns ``application/octet-stream`` when nothing more specific matches.
    """
    head = data[:SNIFF_LENGTH]
    if not head:
        return OCTET_STREAM

    for prefix, media_type in MAGIC_SIGNATURES:
        if head.startswith(prefix):
            return media_type
    if _is_mp4(head):
        return VIDEO_MP4
    if _is_text(head):
        return TEXT_PLAIN
    return OCTET_STREAM


def validate_media(data: bytes) -> tuple[str, bool]:
    """Return the sniffed media type and whether it is an accepted source."""
    media_type = detect_content_type(data)
    return media_type, media_type in SUPPORTED_MEDIA_TYPES


def ensure_supported(data: bytes) -> str:
    """Return the payload's media type or raise if it is not accepted.

    Raises:
        UnsupportedMediaType: If the payload is not a supported video
    """
    media_type, ok = validate_media(data)
    if not ok:
        raise UnsupportedMediaType(f"Unsupported media type: {media_type}")
    return media_type


def extension_for(media_type: str) -> str:
    """Map a media type to its canonical file extension.

    Raises:
        UnreadableMediaType: If no extension is known for the type
    """
    base_type = media_type.split(";", 1)[0].strip().lower()
    extension = _EXTENSION_FALLBACKS.get(base_type) or mimetypes.guess_extension(base_type)
    if not extension:
        raise UnreadableMediaType(f"No extension known for {media_type}")
    return extension
