"""Media module: upload validation, asset lifecycle, storage and streaming."""

from vodstream.modules.media.errors import (
    ConfigurationFailure,
    IdentityGenerationError,
    IncompleteOutput,
    InvalidInput,
    MediaServiceError,
    NotFound,
    StorageFailure,
    TranscodeFailure,
    UnreadableMediaType,
    UnsupportedMediaType,
)
from vodstream.modules.media.models import (
    AssetRegistry,
    AssetStatus,
    InvalidStatusTransition,
    MediaAsset,
)

__all__ = [
    "AssetRegistry",
    "AssetStatus",
    "ConfigurationFailure",
    "IdentityGenerationError",
    "IncompleteOutput",
    "InvalidInput",
    "InvalidStatusTransition",
    "MediaAsset",
    "MediaServiceError",
    "NotFound",
    "StorageFailure",
    "TranscodeFailure",
    "UnreadableMediaType",
    "UnsupportedMediaType",
]
