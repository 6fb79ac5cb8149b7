# uploader/services/multipart_stream.py

import logging
from collections import deque
from typing import AsyncIterator, Deque, Dict, List, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from ..core.exceptions import MalformedInputError, PayloadTooLargeError
from ..models import Part
from .part_accumulator import PartAccumulator

logger = logging.getLogger(__name__)


def extract_boundary(content_type: Optional[str]) -> bytes:
    """
    Pull the boundary out of a multipart/form-data Content-Type header.

    Raises:
        MalformedInputError: If the header is missing, not multipart or has no boundary
    """
    if not content_type:
        raise MalformedInputError("Missing Content-Type header")

    mime_type, params = parse_options_header(content_type)
    if mime_type != b"multipart/form-data":
        raise MalformedInputError(
            f"Expected multipart/form-data, got {mime_type.decode('latin-1') or 'nothing'}"
        )

    boundary = params.get(b"boundary")
    if not boundary:
        raise MalformedInputError("Multipart Content-Type is missing a boundary")
    return boundary


class MultipartDecoder:
    """
    Push decoder for a single multipart/form-data body.

    Wraps python-multipart's callback based ``MultipartParser``: every chunk
    handed to :meth:`feed` is run through the parser, part data is routed into
    one ``PartAccumulator`` per part, and the parts whose terminator was seen
    in that chunk are returned in stream order.

    Besides the per-part ceiling the decoder bounds the number of parts and
    the total body size, so a request cannot hold more than ``max_body_bytes``
    however it is split into parts. Any preamble before the first boundary
    line is discarded.
    """

    def __init__(
        self,
        content_type: Optional[str],
        max_part_bytes: int,
        max_parts: Optional[int] = None,
        max_body_bytes: Optional[int] = None,
    ):
        self.max_part_bytes = max_part_bytes
        self.max_parts = max_parts
        self.max_body_bytes = max_body_bytes
        self.finished = False
        self.part_count = 0
        self.received = 0

        self._started_parts = 0
        self._completed: Deque[Part] = deque()
        self._headers: Dict[str, str] = {}
        self._header_field = bytearray()
        self._header_value = bytearray()
        self._accumulator: Optional[PartAccumulator] = None

        boundary = extract_boundary(content_type)
        self._delimiter = b"--" + boundary
        self._preamble: Optional[bytearray] = bytearray()

        self._parser = MultipartParser(
            boundary,
            callbacks={
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_end": self._on_end,
            },
        )

    def feed(self, chunk: bytes) -> List[Part]:
        """
        Decode the next chunk of the body.

        Returns:
            Parts completed by this chunk, in arrival order

        Raises:
            MalformedInputError: If the chunk breaks the multipart framing
            PayloadTooLargeError: If a part, the part count or the body grows past its limit
        """
        self.received += len(chunk)
        if self.max_body_bytes is not None and self.received > self.max_body_bytes:
            raise PayloadTooLargeError(
                self.max_body_bytes,
                message=f"Request body exceeds the size limit of {self.max_body_bytes} bytes",
            )

        if self._preamble is not None:
            chunk = self._skip_preamble(chunk)
            if not chunk:
                return []

        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise MalformedInputError(f"Malformed multipart body: {str(e)}")

        completed = list(self._completed)
        self._completed.clear()
        return completed

    def finalize(self) -> None:
        """Check that the closing boundary was reached."""
        self._parser.finalize()
        if not self.finished:
            raise MalformedInputError("Multipart body ended before the closing boundary")

    def _skip_preamble(self, chunk: bytes) -> bytes:
        # The first delimiter must start a line; keep enough tail to match one
        # split across chunks, including the byte before it.
        self._preamble += chunk
        start = 0
        while True:
            index = self._preamble.find(self._delimiter, start)
            if index < 0:
                break
            if index == 0 or self._preamble[index - 1] == 0x0A:
                remaining = bytes(self._preamble[index:])
                if index:
                    logger.debug("Skipped multipart preamble before the first boundary")
                self._preamble = None
                return remaining
            start = index + 1
        del self._preamble[: -(len(self._delimiter) + 1)]
        return b""

    def _on_part_begin(self) -> None:
        self._started_parts += 1
        if self.max_parts is not None and self._started_parts > self.max_parts:
            raise PayloadTooLargeError(
                self.max_parts,
                message=f"Multipart body has more than {self.max_parts} parts",
            )
        self._headers = {}
        self._accumulator = None

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        name = bytes(self._header_field).decode("latin-1").strip().lower()
        self._headers[name] = bytes(self._header_value).decode("latin-1").strip()
        self._header_field.clear()
        self._header_value.clear()

    def _on_headers_finished(self) -> None:
        disposition, params = parse_options_header(
            self._headers.get("content-disposition")
        )
        if disposition != b"form-data" or b"name" not in params:
            raise MalformedInputError(
                "Part is missing a form-data Content-Disposition with a name"
            )

        field_name = params[b"name"].decode("utf-8", errors="replace")
        file_name = params.get(b"filename")
        if file_name is not None:
            file_name = file_name.decode("utf-8", errors="replace")

        media_type = None
        if self._headers.get("content-type"):
            media_type = parse_options_header(self._headers["content-type"])[0]
            media_type = media_type.decode("latin-1") or None

        self._accumulator = PartAccumulator(
            field_name,
            self.max_part_bytes,
            file_name=file_name,
            media_type=media_type,
        )

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._accumulator is None:
            raise MalformedInputError("Part data arrived before part headers")
        self._accumulator.append(data[start:end])

    def _on_part_end(self) -> None:
        if self._accumulator is None:
            raise MalformedInputError("Part ended without headers")
        part = self._accumulator.finish()
        self._accumulator = None
        self.part_count += 1
        self._completed.append(part)

    def _on_end(self) -> None:
        self.finished = True


async def _close_source(chunks: AsyncIterator[bytes]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()


async def iter_parts(
    chunks: AsyncIterator[bytes],
    content_type: Optional[str],
    max_part_bytes: int,
    max_parts: Optional[int] = None,
    max_body_bytes: Optional[int] = None,
) -> AsyncIterator[Part]:
    """
    Lazily decode a request body into parts as their terminators arrive.

    The sequence is bound to ``chunks`` and cannot be restarted. On any failure,
    or when the consumer stops early, the chunk source is closed so the client
    is not left streaming into a reader that has given up.

    Args:
        chunks: Async iterator over the raw request body
        content_type: The request's Content-Type header
        max_part_bytes: Ceiling applied to every part's payload
        max_parts: Maximum number of parts, unbounded when None
        max_body_bytes: Ceiling on the whole body, unbounded when None

    Raises:
        MalformedInputError: If the body is not valid multipart or is truncated
        PayloadTooLargeError: If a part, the part count or the body exceeds its limit
    """
    try:
        decoder = MultipartDecoder(
            content_type,
            max_part_bytes,
            max_parts=max_parts,
            max_body_bytes=max_body_bytes,
        )
        async for chunk in chunks:
            if not chunk:
                continue
            for part in decoder.feed(chunk):
                yield part
        decoder.finalize()
        logger.info(f"Decoded {decoder.part_count} parts from {decoder.received} bytes")
    finally:
        await _close_source(chunks)


async def read_parts(
    chunks: AsyncIterator[bytes],
    content_type: Optional[str],
    max_part_bytes: int,
    max_parts: Optional[int] = None,
    max_body_bytes: Optional[int] = None,
) -> List[Part]:
    """Decode the whole body; either every part is returned or an error is raised."""
    return [
        part
        async for part in iter_parts(
            chunks, content_type, max_part_bytes, max_parts, max_body_bytes
        )
    ]


async def read_body(
    chunks: AsyncIterator[bytes],
    max_bytes: int,
    field_name: str = "body",
    media_type: Optional[str] = None,
) -> Part:
    """Read a non-multipart body into a single part under the same ceiling."""
    accumulator = PartAccumulator(field_name, max_bytes, media_type=media_type)
    try:
        async for chunk in chunks:
            if chunk:
                accumulator.append(chunk)
        return accumulator.finish()
    finally:
        await _close_source(chunks)
