from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """
    Abstract base class for content-addressable storage backends.
    Implementations must be idempotent for identical byte content.
    """

    @abstractmethod
    async def put(self, data: bytes, filename: str, media_type: str) -> str:
        """
        Store bytes and return their content identifier.

        Args:
            data: Raw content to store
            filename: Name the backend should associate with the content
            media_type: MIME type of the content

        Returns:
            The CID of the stored content

        Raises:
            StorageAuthError: If the credential or quota is rejected
            StorageBackendError: For any other failure
        """
        pass

    async def aclose(self) -> None:
        """Release any resources held by the backend."""
        pass
