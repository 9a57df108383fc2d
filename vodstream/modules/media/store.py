"""On-disk media layout.

Staging area: ``<upload_root>/<id><ext>`` holds raw uploads.
Output area: ``<media_root>/<id>/`` holds ``index.m3u8`` and its
``index<N>.ts`` segments.

Paths derived from request input are only built after the id and resource
name pass their grammar checks.
"""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from vodstream.modules.media.errors import IncompleteOutput, NotFound, StorageFailure
from vodstream.modules.media.identity import is_valid_asset_id
from vodstream.modules.transcoding.playlist import is_complete_manifest, parse_manifest_segments

logger = logging.getLogger(__name__)

MANIFEST_NAME = "index.m3u8"
MANIFEST_PATTERN = re.compile(r"^index\.m3u8$")
SEGMENT_PATTERN = re.compile(r"^index[0-9]+\.ts$")

RESOURCE_MANIFEST = "manifest"
RESOURCE_SEGMENT = "segment"


def classify_resource(resource_name: str) -> Optional[str]:
    """Return ``"manifest"``, ``"segment"`` or None for a resource name."""
    if not isinstance(resource_name, str):
        return None
    if MANIFEST_PATTERN.fullmatch(resource_name):
        return RESOURCE_MANIFEST
    if SEGMENT_PATTERN.fullmatch(resource_name):
        return RESOURCE_SEGMENT
    return None


class MediaStore:
    """Filesystem access for staged uploads and transcoded output."""

    def __init__(self, upload_root: Union[str, Path], media_root: Union[str, Path]):
        self.upload_root = Path(upload_root)
        self.media_root = Path(media_root)

    def staging_path(self, asset_id: str, extension: str) -> Path:
        return self.upload_root / f"{asset_id}{extension}"

    def output_dir(self, asset_id: str) -> Path:
        return self.media_root / asset_id

    def manifest_path(self, asset_id: str) -> Path:
        return self.output_dir(asset_id) / MANIFEST_NAME

    def stage_upload(self, asset_id: str, extension: str, data: bytes) -> Path:
        """Write a raw upload to the staging area atomically.

        The payload goes to a temp file in the same directory, is fsynced,
        and is then renamed into place, so a reader never sees a partial
        file.

        Raises:
            StorageFailure: If the file cannot be written
        """
        target = self.staging_path(asset_id, extension)
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=target.parent,
                prefix=f".{asset_id}.",
                suffix=".part",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove partial upload {tmp_name}")
            raise StorageFailure(f"Failed to stage upload {asset_id}: {e}") from e

        logger.debug(f"Staged {len(data)} bytes at {target}")
        return target

    def ensure_output_dir(self, asset_id: str) -> Path:
        """Create the asset's output directory if it does not exist.

        Raises:
            StorageFailure: If the directory cannot be created
        """
        path = self.output_dir(asset_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFailure(f"Failed to create output directory {path}: {e}") from e
        return path

    def resolve(self, asset_id: str, resource_name: str) -> Path:
        """Resolve a streaming resource to an existing file.

        Raises:
            NotFound: If the id or resource name fails its grammar, or the
                file does not exist
        """
        if not is_valid_asset_id(asset_id):
            raise NotFound(f"Invalid asset id: {asset_id!r}")
        if classify_resource(resource_name) is None:
            raise NotFound(f"Invalid resource name: {resource_name!r}")

        path = self.output_dir(asset_id) / resource_name
        if not path.is_file():
            raise NotFound(f"No such resource: {asset_id}/{resource_name}")
        return path

    def read_manifest(self, asset_id: str) -> str:
        """Return the raw text of an asset's manifest.

        Raises:
            IncompleteOutput: If the manifest cannot be read
        """
        try:
            return self.manifest_path(asset_id).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise IncompleteOutput(f"Manifest unreadable for {asset_id}: {e}") from e

    def read_manifest_segments(self, asset_id: str) -> list[str]:
        """Return the segment names referenced by an asset's manifest."""
        return parse_manifest_segments(self.read_manifest(asset_id))

    def verify_output(self, asset_id: str, require_endlist: bool = False) -> list[str]:
        """Check that the manifest and every segment it references exist.

        Args:
            asset_id: Asset whose output is checked
            require_endlist: Also require ``#EXT-X-ENDLIST``; VOD playlists
                written with unlimited retention are always closed

        Returns:
            The referenced segment names

        Raises:
            IncompleteOutput: If anything is missing or malformed
        """
        text = self.read_manifest(asset_id)
        if require_endlist and not is_complete_manifest(text):
            raise IncompleteOutput(f"Manifest for {asset_id} was never closed")

        segments = parse_manifest_segments(text)
        if not segments:
            raise IncompleteOutput(f"Manifest for {asset_id} references no segments")

        output_dir = self.output_dir(asset_id)
        for name in segments:
            if classify_resource(name) != RESOURCE_SEGMENT:
                raise IncompleteOutput(f"Manifest for {asset_id} references unexpected entry {name!r}")
            if not (output_dir / name).is_file():
                raise IncompleteOutput(f"Segment {name} missing for {asset_id}")
        return segments
