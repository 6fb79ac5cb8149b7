# uploader/services/storage/__init__.py
from .base import StorageBackend
from .web3storage import Web3StorageClient

__all__ = ["StorageBackend", "Web3StorageClient"]
