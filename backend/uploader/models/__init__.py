# models/__init__.py
from .model_part import DEFAULT_MEDIA_TYPE, Part, UploadRequest
from .model_responses import (
    ErrorResponse,
    MetadataUploadResponse,
    UploadResponse,
    UploadResult,
)

__all__ = [
    "DEFAULT_MEDIA_TYPE",
    "Part",
    "UploadRequest",
    "UploadResult",
    "UploadResponse",
    "MetadataUploadResponse",
    "ErrorResponse",
]
