# uploader/services/storage/web3storage.py

import logging
from typing import Optional

import httpx

from ...core.exceptions import StorageAuthError, StorageBackendError
from .base import StorageBackend

logger = logging.getLogger(__name__)

_AUTH_STATUSES = (401, 403)


class Web3StorageClient(StorageBackend):
    """Uploads content to the web3.storage HTTP API."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.web3.storage",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def put(self, data: bytes, filename: str, media_type: str) -> str:
        logger.info(f"Uploading {filename} ({len(data)} bytes, {media_type})")
        try:
            response = await self._client.post(
                "/upload",
                content=data,
                headers={"Content-Type": media_type, "X-Name": filename},
            )
        except httpx.HTTPError as e:
            logger.error(f"Storage backend unreachable: {str(e)}")
            raise StorageBackendError(f"Storage backend request failed: {str(e)}") from e

        if response.status_code in _AUTH_STATUSES:
            raise StorageAuthError(
                f"Storage backend rejected the credential ({response.status_code}): "
                f"{response.text}"
            )
        if response.is_error:
            raise StorageBackendError(
                f"Storage backend returned {response.status_code}: {response.text}"
            )

        try:
            cid = response.json().get("cid")
        except (ValueError, AttributeError) as e:
            raise StorageBackendError(f"Unreadable storage backend response: {str(e)}")
        if not cid:
            raise StorageBackendError("Storage backend response did not include a cid")

        logger.info(f"Stored {filename} as {cid}")
        return cid

    async def aclose(self) -> None:
        await self._client.aclose()
