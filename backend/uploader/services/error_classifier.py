# uploader/services/error_classifier.py

import logging
from typing import Optional

from pydantic import BaseModel

from ..core.exceptions import (
    ClientInputError,
    ConfigurationError,
    InvalidMetadataError,
    MalformedInputError,
    MissingFileError,
    PayloadTooLargeError,
    UpstreamDependencyError,
)

logger = logging.getLogger(__name__)


class FailureOutcome(BaseModel):
    kind: str
    status_code: int
    message: str
    stage: Optional[str] = None

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500


# Most specific classes first; the first isinstance match wins.
_CLASSIFICATION = (
    (MalformedInputError, "malformed_input", 400),
    (MissingFileError, "missing_file", 400),
    (InvalidMetadataError, "invalid_metadata", 400),
    (ClientInputError, "client_input", 400),
    (PayloadTooLargeError, "payload_too_large", 413),
    (UpstreamDependencyError, "upload_failed", 500),
    (ConfigurationError, "configuration", 500),
)


def classify_failure(exc: Exception) -> FailureOutcome:
    """
    Map any failure raised while handling an upload to its external outcome.

    Args:
        exc: The exception that terminated the request

    Returns:
        FailureOutcome with the response status, message and failing stage
    """
    for exc_type, kind, status_code in _CLASSIFICATION:
        if isinstance(exc, exc_type):
            return FailureOutcome(
                kind=kind,
                status_code=status_code,
                message=exc.message,
                stage=exc.stage,
            )

    logger.error(f"Unclassified failure: {str(exc)}", exc_info=exc)
    return FailureOutcome(
        kind="internal", status_code=500, message="Internal server error"
    )
