"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
Components receive a Settings instance at construction time instead of
reading module globals, so tests can point every root at a temp directory.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from vodstream.modules.transcoding.models import ManifestRetention
from vodstream.modules.transcoding.schemas import TranscodeConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "vodstream"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Media layout
    UPLOAD_ROOT: str = "./in"
    MEDIA_ROOT: str = "./m3u8s"
    MAX_UPLOAD_BYTES: int = 2 * 1024 * 1024 * 1024  # 2 GiB

    # Transcoding engine
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    TRANSCODE_FRAME: str = "640x360"
    TRANSCODE_SEGMENT_DURATION: int = 5
    TRANSCODE_RETENTION: ManifestRetention = ManifestRetention.UNLIMITED
    TRANSCODE_WINDOW_SIZE: int = 6
    TRANSCODE_TIMEOUT_SECONDS: float = 3600.0  # 0 disables the timeout
    TRANSCODE_MAX_WORKERS: int = 2

    # Upload behaviour
    WAIT_FOR_TRANSCODE: bool = True

    # Tracing
    TRACING_ENABLED: bool = True
    OTLP_ENDPOINT: Optional[str] = None

    @property
    def upload_root(self) -> Path:
        return Path(self.UPLOAD_ROOT)

    @property
    def media_root(self) -> Path:
        return Path(self.MEDIA_ROOT)

    def transcode_config(self) -> TranscodeConfig:
        """Build the default job configuration from settings."""
        return TranscodeConfig(
            frame=self.TRANSCODE_FRAME,
            segment_duration=self.TRANSCODE_SEGMENT_DURATION,
            retention=self.TRANSCODE_RETENTION,
            window_size=self.TRANSCODE_WINDOW_SIZE,
        )


settings = Settings()
