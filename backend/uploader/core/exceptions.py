"""
Custom exceptions for the upload service.
"""

from typing import Optional


class UploadError(Exception):
    """Base exception for failures while handling an upload request."""

    default_stage = "request"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage


class ClientInputError(UploadError):
    """Raised when the request itself is unusable."""

    pass


class MalformedInputError(ClientInputError):
    """Raised when the body cannot be decoded as multipart/form-data."""

    default_stage = "decode"


class MissingFileError(ClientInputError):
    """Raised when no part named "file" is present."""

    default_stage = "select"


class InvalidMetadataError(ClientInputError):
    """Raised when the metadata document is not a JSON object."""

    default_stage = "metadata"


class PayloadTooLargeError(UploadError):
    """Raised when a part or the whole body grows beyond a configured ceiling."""

    default_stage = "decode"

    def __init__(
        self,
        limit: int,
        field_name: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            target = f"Part '{field_name}'" if field_name else "Part"
            message = f"{target} exceeds the size limit of {limit} bytes"
        super().__init__(message)
        self.limit = limit
        self.field_name = field_name


class UpstreamDependencyError(UploadError):
    """Raised when the storage backend rejects an upload or cannot be reached."""

    pass


class ConfigurationError(UploadError):
    """Raised when there's an error in the configuration."""

    default_stage = "config"


class StorageBackendError(Exception):
    """Raised by storage clients when a put call fails."""

    pass


class StorageAuthError(StorageBackendError):
    """Raised when the storage backend refuses the credential or quota."""

    pass
