# uploader/services/part_accumulator.py

import logging
from typing import List, Optional

from ..core.exceptions import PayloadTooLargeError
from ..models import DEFAULT_MEDIA_TYPE, Part

logger = logging.getLogger(__name__)


class PartAccumulator:
    """
    Buffers the body of a single multipart part up to a byte ceiling.

    The ceiling is checked before each chunk is stored, so an oversized part
    never holds more than ``max_bytes`` in memory. Once the ceiling has been
    crossed the accumulator is closed and rejects any further chunks.
    """

    def __init__(
        self,
        field_name: str,
        max_bytes: int,
        file_name: Optional[str] = None,
        media_type: Optional[str] = None,
    ):
        self.field_name = field_name
        self.file_name = file_name
        self.media_type = media_type or DEFAULT_MEDIA_TYPE
        self.max_bytes = max_bytes
        self.total = 0
        self.closed = False
        self._chunks: List[bytes] = []

    def append(self, chunk: bytes) -> None:
        """
        Add a chunk of part data.

        Raises:
            PayloadTooLargeError: If the running total would exceed the ceiling
        """
        if self.closed:
            raise PayloadTooLargeError(self.max_bytes, self.field_name)
        if self.total + len(chunk) > self.max_bytes:
            self.closed = True
            self._chunks.clear()
            logger.warning(
                f"Part '{self.field_name}' exceeded {self.max_bytes} bytes, aborting"
            )
            raise PayloadTooLargeError(self.max_bytes, self.field_name)
        self._chunks.append(chunk)
        self.total += len(chunk)

    def finish(self) -> Part:
        """Close the accumulator and return the completed part."""
        if self.closed:
            raise PayloadTooLargeError(self.max_bytes, self.field_name)
        self.closed = True
        payload = b"".join(self._chunks)
        self._chunks = []
        logger.debug(f"Part '{self.field_name}' complete: {len(payload)} bytes")
        return Part(
            field_name=self.field_name,
            file_name=self.file_name,
            declared_media_type=self.media_type,
            payload=payload,
        )
