"""Property-based tests for upload content validation.

**Feature: vodstream, Property 1: Content Validation**
"""

import pytest
from hypothesis import given, settings, strategies as st

from vodstream.modules.media.errors import UnreadableMediaType, UnsupportedMediaType
from vodstream.modules.media.validator import (
    OCTET_STREAM,
    TEXT_PLAIN,
    VIDEO_MP4,
    detect_content_type,
    ensure_supported,
    extension_for,
    validate_media,
)


def ftyp_box(major: bytes, minor: bytes, compatible: list[bytes]) -> bytes:
    body = b"ftyp" + major + minor + b"".join(compatible)
    return (len(body) + 4).to_bytes(4, "big") + body


brand_strategy = st.binary(min_size=4, max_size=4)
mp4_brand_strategy = st.builds(lambda tail: b"mp4" + tail, st.binary(min_size=1, max_size=1))


class TestValidatorTotality:
    """Validator behaviour over arbitrary buffers."""

    @given(data=st.binary(max_size=2048))
    @settings(max_examples=300)
    def test_any_buffer_yields_a_verdict(self, data: bytes) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        For any byte buffer, validation SHALL return a media type and a
        verdict without raising, and accept exactly video/mp4.
        """
        media_type, ok = validate_media(data)

        assert isinstance(media_type, str) and media_type
        assert ok == (media_type == VIDEO_MP4)

    @given(data=st.binary(max_size=2048))
    @settings(max_examples=300)
    def test_accepted_buffers_start_with_ftyp_box(self, data: bytes) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        Any accepted buffer SHALL carry an ftyp box whose size is a
        multiple of 4 and fits inside the buffer.
        """
        _, ok = validate_media(data)
        if ok:
            box_size = int.from_bytes(data[:4], "big")
            assert data[4:8] == b"ftyp"
            assert box_size % 4 == 0
            assert box_size <= len(data)

    @given(data=st.binary(max_size=2048), tail=st.binary(max_size=1024))
    @settings(max_examples=100)
    def test_only_first_512_bytes_matter(self, data: bytes, tail: bytes) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        Bytes past the sniffing window SHALL NOT change the verdict.
        """
        head = data[:512]
        if len(head) == 512:
            assert detect_content_type(head + tail) == detect_content_type(head)

    def test_empty_payload_is_rejected(self) -> None:
        assert validate_media(b"") == (OCTET_STREAM, False)
        with pytest.raises(UnsupportedMediaType) as exc_info:
            ensure_supported(b"")
        assert exc_info.value.code == "INVALID_FILE_TYPE"


class TestMp4Detection:
    """ISO-BMFF ftyp sniffing."""

    @given(
        major=mp4_brand_strategy,
        minor=brand_strategy,
        compatible=st.lists(brand_strategy, max_size=6),
        trailer=st.binary(max_size=256),
    )
    @settings(max_examples=200)
    def test_mp4_major_brand_is_accepted(self, major, minor, compatible, trailer) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        A well-formed ftyp box with an mp4 major brand SHALL be accepted.
        """
        data = ftyp_box(major, minor, compatible) + trailer

        assert ensure_supported(data) == VIDEO_MP4

    @given(
        minor=brand_strategy,
        before=st.lists(st.sampled_from([b"isom", b"avc1", b"iso2"]), max_size=3),
        brand=mp4_brand_strategy,
    )
    @settings(max_examples=100)
    def test_mp4_compatible_brand_is_accepted(self, minor, before, brand) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        An mp4 brand anywhere in the compatible list SHALL be accepted.
        """
        data = ftyp_box(b"isom", minor, before + [brand])

        assert detect_content_type(data) == VIDEO_MP4

    def test_mp4_in_minor_version_is_ignored(self) -> None:
        data = ftyp_box(b"isom", b"mp41", [b"avc1"])

        assert detect_content_type(data) != VIDEO_MP4

    def test_box_size_not_multiple_of_four_is_rejected(self) -> None:
        data = b"\x00\x00\x00\x13ftypmp42\x00\x00\x00\x00mp4" + b"\x00" * 16

        assert validate_media(data)[1] is False

    def test_box_size_larger_than_buffer_is_rejected(self) -> None:
        data = b"\x00\x00\x01\x00ftypmp42\x00\x00\x00\x00mp42"

        assert validate_media(data)[1] is False

    def test_short_buffer_is_rejected(self) -> None:
        assert validate_media(b"\x00\x00\x00\x08ftyp")[1] is False


class TestNonVideoSignatures:
    """Common non-video payloads are recognised and rejected."""

    @pytest.mark.parametrize(
        "data,expected",
        [
            (b"\x89PNG\r\n\x1a\n" + b"\x00" * 32, "image/png"),
            (b"\xff\xd8\xff\xe0" + b"\x00" * 32, "image/jpeg"),
            (b"GIF89a" + b"\x00" * 32, "image/gif"),
            (b"%PDF-1.7\n" + b"\x00" * 32, "application/pdf"),
            (b"just some words in a text file\n", TEXT_PLAIN),
            (b"\x00\x01\x02\x03binary", OCTET_STREAM),
        ],
    )
    def test_signature_detection(self, data: bytes, expected: str) -> None:
        assert detect_content_type(data) == expected
        with pytest.raises(UnsupportedMediaType):
            ensure_supported(data)

    @given(text=st.text(alphabet=st.characters(min_codepoint=0x20, max_codepoint=0x7E), min_size=1, max_size=400))
    @settings(max_examples=100)
    def test_printable_text_is_never_video(self, text: str) -> None:
        """**Feature: vodstream, Property 1: Content Validation**

        Printable ASCII text SHALL never be accepted as video.
        """
        media_type, ok = validate_media(text.encode("ascii"))

        assert not ok
        assert media_type in (TEXT_PLAIN, "application/pdf", "image/gif")


class TestExtensionLookup:
    def test_mp4_extension(self) -> None:
        assert extension_for(VIDEO_MP4) == ".mp4"

    def test_parameters_are_ignored(self) -> None:
        assert extension_for("video/mp4; codecs=avc1") == ".mp4"

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnreadableMediaType) as exc_info:
            extension_for("application/x-vodstream-unknown")
        assert exc_info.value.code == "CANT_READ_FILE_TYPE"
        assert exc_info.value.status_code == 500
