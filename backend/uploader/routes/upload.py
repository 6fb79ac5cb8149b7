import asyncio
import logging
from typing import AsyncIterator, Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request, Response

from ..config import Settings, settings
from ..core.exceptions import ConfigurationError, UpstreamDependencyError
from ..models import MetadataUploadResponse, UploadResponse
from ..services.multipart_stream import read_body, read_parts
from ..services.storage import StorageBackend, Web3StorageClient
from ..services.upload_orchestrator import (
    MetadataDefaults,
    UploadOrchestrator,
    ipfs_url,
    parse_metadata,
)

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")


def get_settings() -> Settings:
    """Dependency for process-wide settings."""
    return settings


def get_metadata_defaults(
    app_settings: Settings = Depends(get_settings),
) -> MetadataDefaults:
    """Dependency for the default metadata name and description."""
    return MetadataDefaults(
        name=app_settings.default_name,
        description=app_settings.default_description,
    )


async def get_storage_backend(
    app_settings: Settings = Depends(get_settings),
) -> AsyncIterator[StorageBackend]:
    """Dependency for the storage backend client."""
    if not app_settings.web3storage_token:
        raise ConfigurationError("Missing WEB3STORAGE_TOKEN")

    client = Web3StorageClient(
        app_settings.web3storage_token,
        base_url=app_settings.storage_api_url,
        timeout=app_settings.request_timeout_seconds,
    )
    try:
        yield client
    finally:
        await client.aclose()


async def with_deadline(operation: Awaitable[T], timeout: float) -> T:
    """
    Await ``operation`` under the per-request deadline.

    Raises:
        UpstreamDependencyError: If the deadline expires first
    """
    try:
        return await asyncio.wait_for(operation, timeout)
    except asyncio.TimeoutError:
        logger.error(f"Request abandoned after {timeout} seconds")
        raise UpstreamDependencyError(
            f"Request did not complete within {timeout} seconds", stage="timeout"
        )


@router.options("/upload")
@router.options("/upload-metadata")
async def preflight():
    return Response(status_code=200)


@router.post("/upload", response_model=UploadResponse)
async def upload_asset(
    request: Request,
    storage: StorageBackend = Depends(get_storage_backend),
    defaults: MetadataDefaults = Depends(get_metadata_defaults),
    app_settings: Settings = Depends(get_settings),
):
    """
    Upload one binary asset and its metadata document.

    The multipart body must contain a file part named "file" and may contain
    a part with filename "metadata.json". The body is decoded completely
    before anything is uploaded; the asset's CID is then merged into the
    metadata document as ``image`` and the document is uploaded as well.

    Returns:
        UploadResponse with both CIDs and their ipfs:// URIs
    """

    async def run():
        parts = await read_parts(
            request.stream(),
            request.headers.get("content-type"),
            app_settings.max_upload_bytes,
            max_parts=app_settings.max_parts,
            max_body_bytes=app_settings.max_request_bytes,
        )
        return await UploadOrchestrator(storage).process(parts, defaults)

    logger.info("Starting asset upload")
    result = await with_deadline(run(), app_settings.request_timeout_seconds)
    logger.info(f"Upload complete: image={result.image_cid} metadata={result.metadata_cid}")
    return UploadResponse(**result.model_dump())


@router.post("/upload-metadata", response_model=MetadataUploadResponse)
async def upload_metadata_document(
    request: Request,
    storage: StorageBackend = Depends(get_storage_backend),
    app_settings: Settings = Depends(get_settings),
):
    """Upload a JSON metadata document as-is and return its token URI."""

    async def run():
        body = await read_body(
            request.stream(),
            app_settings.max_upload_bytes,
            field_name="metadata",
            media_type=request.headers.get("content-type"),
        )
        document = parse_metadata(body)
        return await UploadOrchestrator(storage).upload_metadata(document)

    metadata_cid = await with_deadline(run(), app_settings.request_timeout_seconds)
    logger.info(f"Metadata upload complete: {metadata_cid}")
    return MetadataUploadResponse(
        metadata_cid=metadata_cid, token_uri=ipfs_url(metadata_cid)
    )
