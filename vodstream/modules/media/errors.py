"""Media service exceptions.

Each error carries the short machine-readable code and HTTP status the API
returns for it. Messages are for logs only and never reach the client.
"""


class MediaServiceError(Exception):
    """Base exception for media service errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "", diagnostic: str = ""):
        super().__init__(message or self.code)
        self.diagnostic = diagnostic


class InvalidInput(MediaServiceError):
    """Raised when the upload field is missing, empty or too large."""

    code = "INVALID_FILE"
    status_code = 400


class UnsupportedMediaType(MediaServiceError):
    """Raised when the payload signature is not an accepted source type."""

    code = "INVALID_FILE_TYPE"
    status_code = 400


class UnreadableMediaType(MediaServiceError):
    """Raised when a detected media type has no known file extension."""

    code = "CANT_READ_FILE_TYPE"
    status_code = 500


class StorageFailure(MediaServiceError):
    """Raised when staging, directory creation or output checks fail."""

    code = "CANT_WRITE_FILE"
    status_code = 500


class IncompleteOutput(StorageFailure):
    """Raised when a manifest is missing or references absent segments."""

    pass


class ConfigurationFailure(MediaServiceError):
    """Raised when the transcoding engine could not be initialized."""

    code = "CANT_TRANSCODE_FILE"
    status_code = 500


class TranscodeFailure(MediaServiceError):
    """Raised when the transcoding engine ran but failed."""

    code = "CANT_TRANSCODE_FILE"
    status_code = 500


class IdentityGenerationError(MediaServiceError):
    """Raised when the system randomness source cannot be read."""

    pass


class NotFound(MediaServiceError):
    """Raised for unknown assets, unready assets and bad resource names."""

    code = "NOT_FOUND"
    status_code = 404
