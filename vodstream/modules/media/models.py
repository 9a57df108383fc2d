"""Media asset lifecycle and the in-memory asset registry."""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from vodstream.core.metrics import ASSETS_BY_STATUS


class AssetStatus(str, Enum):
    """Lifecycle status of a media asset."""
    UPLOADING = "uploading"
    VALIDATING = "validating"
    TRANSCODING = "transcoding"
    READY = "ready"
    FAILED = "failed"


# Forward-only transitions; READY and FAILED are terminal
ALLOWED_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.UPLOADING: frozenset({AssetStatus.VALIDATING, AssetStatus.FAILED}),
    AssetStatus.VALIDATING: frozenset({AssetStatus.TRANSCODING, AssetStatus.FAILED}),
    AssetStatus.TRANSCODING: frozenset({AssetStatus.READY, AssetStatus.FAILED}),
    AssetStatus.READY: frozenset(),
    AssetStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({AssetStatus.READY, AssetStatus.FAILED})


class InvalidStatusTransition(Exception):
    """Raised when an asset would move backwards or leave a terminal state."""

    pass


class DuplicateAssetError(Exception):
    """Raised when an asset id is registered twice."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MediaAsset:
    """One uploaded source video and its derived streaming output."""
    id: str
    status: AssetStatus = AssetStatus.UPLOADING
    source_path: Optional[Path] = None
    output_dir: Optional[Path] = None
    media_type: Optional[str] = None
    source_size: int = 0
    progress: float = 0.0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    history: list[AssetStatus] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.history:
            self.history.append(self.status)

    def __repr__(self) -> str:
        return f"<MediaAsset {self.id} - {self.status.value}>"

    @property
    def is_ready(self) -> bool:
        return self.status == AssetStatus.READY

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, new_status: AssetStatus, error: Optional[str] = None) -> AssetStatus:
        """Move the asset forward and return the previous status.

        Raises:
            InvalidStatusTransition: If the move is not allowed
        """
        with self._lock:
            previous = self.status
            if new_status not in ALLOWED_TRANSITIONS[previous]:
                raise InvalidStatusTransition(
                    f"Asset {self.id}: {previous.value} -> {new_status.value} is not allowed"
                )
            self.status = new_status
            self.history.append(new_status)
            self.updated_at = _utcnow()
            if new_status == AssetStatus.READY:
                self.progress = 100.0
            if error is not None:
                self.error = error
            return previous

    def report_progress(self, percent: float) -> None:
        with self._lock:
            if self.status == AssetStatus.TRANSCODING:
                self.progress = max(self.progress, min(100.0, percent))
                self.updated_at = _utcnow()


class AssetRegistry:
    """Thread-safe in-memory map of asset id to MediaAsset.

    Holds every asset that passed validation. State does not survive a
    process restart.
    """

    def __init__(self):
        self._assets: dict[str, MediaAsset] = {}
        self._lock = threading.Lock()

    def register(self, asset: MediaAsset) -> MediaAsset:
        with self._lock:
            if asset.id in self._assets:
                raise DuplicateAssetError(f"Asset {asset.id} is already registered")
            self._assets[asset.id] = asset
        ASSETS_BY_STATUS.labels(status=asset.status.value).inc()
        return asset

    def get(self, asset_id: str) -> Optional[MediaAsset]:
        with self._lock:
            return self._assets.get(asset_id)

    def get_ready(self, asset_id: str) -> Optional[MediaAsset]:
        """Get an asset only if it is ready to be streamed."""
        asset = self.get(asset_id)
        if asset is not None and asset.is_ready:
            return asset
        return None

    def is_registered(self, asset: MediaAsset) -> bool:
        with self._lock:
            return self._assets.get(asset.id) is asset

    def transition(
        self,
        asset: MediaAsset,
        new_status: AssetStatus,
        error: Optional[str] = None,
    ) -> None:
        """Move an asset forward, keeping the status gauge in step."""
        previous = asset.transition(new_status, error=error)
        if self.is_registered(asset):
            ASSETS_BY_STATUS.labels(status=previous.value).dec()
            ASSETS_BY_STATUS.labels(status=new_status.value).inc()

    def list_assets(self, status: Optional[AssetStatus] = None) -> list[MediaAsset]:
        with self._lock:
            assets = list(self._assets.values())
        if status is not None:
            assets = [a for a in assets if a.status == status]
        return assets

    def __len__(self) -> int:
        with self._lock:
            return len(self._assets)
