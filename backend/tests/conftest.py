import os
import sys
from typing import List, Optional, Sequence, Tuple

import pytest

# Get the absolute path of the backend directory
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Add the backend directory to the Python path
sys.path.append(backend_dir)

from uploader.core.exceptions import StorageBackendError  # noqa: E402
from uploader.services.storage import StorageBackend  # noqa: E402

BOUNDARY = "----testboundary7MA4YWxkTrZu0gW"


def build_multipart(
    parts: Sequence[Tuple[str, Optional[str], Optional[str], bytes]],
    boundary: str = BOUNDARY,
) -> bytes:
    """Encode (name, filename, content_type, payload) tuples as multipart/form-data."""
    body = b""
    for name, filename, content_type, payload in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        body += f"--{boundary}\r\nContent-Disposition: {disposition}\r\n".encode()
        if content_type:
            body += f"Content-Type: {content_type}\r\n".encode()
        body += b"\r\n" + payload + b"\r\n"
    body += f"--{boundary}--\r\n".encode()
    return body


def multipart_content_type(boundary: str = BOUNDARY) -> str:
    return f"multipart/form-data; boundary={boundary}"


class ChunkSource:
    """Async chunk iterator that records how much of the body was pulled."""

    def __init__(self, body: bytes, chunk_size: int = 16):
        self.chunks = [body[i : i + chunk_size] for i in range(0, len(body), chunk_size)]
        self.consumed = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self.closed or self.consumed >= len(self.chunks):
            raise StopAsyncIteration
        chunk = self.chunks[self.consumed]
        self.consumed += 1
        return chunk

    async def aclose(self) -> None:
        self.closed = True


class RecordingStorage(StorageBackend):
    """In-memory storage backend that records every put call."""

    def __init__(self, cids: Optional[List[str]] = None, fail_on_call: Optional[int] = None):
        self.cids = list(cids or ["bafyimagecid", "bafymetadatacid"])
        self.fail_on_call = fail_on_call
        self.calls: List[Tuple[bytes, str, str]] = []

    async def put(self, data: bytes, filename: str, media_type: str) -> str:
        self.calls.append((data, filename, media_type))
        if self.fail_on_call == len(self.calls):
            raise StorageBackendError("backend returned 503")
        return self.cids[len(self.calls) - 1]


@pytest.fixture
def storage():
    return RecordingStorage()
