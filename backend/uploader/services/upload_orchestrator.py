# uploader/services/upload_orchestrator.py

import json
import logging
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel

from ..core.exceptions import (
    InvalidMetadataError,
    MissingFileError,
    StorageBackendError,
    UpstreamDependencyError,
)
from ..models import Part, UploadRequest, UploadResult
from .storage import StorageBackend

logger = logging.getLogger(__name__)

FILE_FIELD = "file"
METADATA_FILENAME = "metadata.json"
METADATA_MEDIA_TYPE = "application/json"
FALLBACK_FILENAME = "image"
FALLBACK_MEDIA_TYPE = "application/octet-stream"


class MetadataDefaults(BaseModel):
    name: str
    description: str


def ipfs_url(cid: str) -> str:
    return f"ipfs://{cid}"


def select_parts(parts: Sequence[Part]) -> UploadRequest:
    """
    Pick the binary part and the optional metadata part.

    The first file part named "file" is the binary; the first part whose
    filename is "metadata.json" is the metadata. Parts without a filename are
    plain form fields and never count as the binary.

    Raises:
        MissingFileError: If no file part named "file" exists
    """
    binary = next((p for p in parts if p.field_name == FILE_FIELD and p.is_file), None)
    if binary is None:
        raise MissingFileError("No file part named 'file' in the upload")

    metadata = next(
        (p for p in parts if p.file_name == METADATA_FILENAME and p is not binary),
        None,
    )
    fields = [p for p in parts if not p.is_file]
    return UploadRequest(binary=binary, metadata=metadata, fields=fields)


def parse_metadata(part: Optional[Part]) -> Dict[str, Any]:
    """
    Decode the caller's metadata document.

    Raises:
        InvalidMetadataError: If the payload is not a JSON object
    """
    if part is None:
        return {}
    try:
        document = json.loads(part.payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidMetadataError(f"metadata.json is not valid JSON: {str(e)}")
    if not isinstance(document, dict):
        raise InvalidMetadataError("metadata.json must contain a JSON object")
    return document


def merge_metadata(
    document: Dict[str, Any], image_url: str, defaults: MetadataDefaults
) -> Dict[str, Any]:
    """
    Return a copy of ``document`` pointing at the uploaded image.

    ``image`` is always overwritten, ``name`` and ``description`` fall back to
    the defaults when missing or empty, every other key is kept as-is.
    """
    merged = dict(document)
    merged["image"] = image_url
    if not merged.get("name"):
        merged["name"] = defaults.name
    if not merged.get("description"):
        merged["description"] = defaults.description
    return merged


class UploadOrchestrator:
    """
    Runs the dependent upload pipeline for one request:
    select parts, upload the binary, merge its CID into the metadata,
    upload the metadata.

    Each step only runs when the previous one produced its output, so a
    metadata document can only ever reference a CID returned by the storage
    backend. A successful image upload is not rolled back when a later
    step fails; the backend is content-addressed and re-uploading is a no-op.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    async def process(
        self, parts: Sequence[Part], defaults: MetadataDefaults
    ) -> UploadResult:
        request = select_parts(parts)
        logger.info(
            f"Processing upload: file={request.binary.file_name!r} "
            f"({request.binary.byte_count} bytes), "
            f"metadata={'yes' if request.metadata else 'no'}"
        )
        if request.fields:
            logger.info(
                f"Ignoring form fields: {[field.field_name for field in request.fields]}"
            )

        image_cid = await self._upload_image(request.binary)
        image_url = ipfs_url(image_cid)

        document = merge_metadata(parse_metadata(request.metadata), image_url, defaults)
        metadata_cid = await self.upload_metadata(document)

        return UploadResult(
            image_cid=image_cid,
            image_url=image_url,
            metadata_cid=metadata_cid,
            metadata_url=ipfs_url(metadata_cid),
        )

    async def _upload_image(self, binary: Part) -> str:
        try:
            return await self.storage.put(
                binary.payload,
                binary.file_name or FALLBACK_FILENAME,
                binary.declared_media_type or FALLBACK_MEDIA_TYPE,
            )
        except StorageBackendError as e:
            logger.error(f"Image upload failed: {str(e)}")
            raise UpstreamDependencyError(f"Image upload failed: {str(e)}", stage="image")

    async def upload_metadata(self, document: Dict[str, Any]) -> str:
        """Serialize and store a metadata document, returning its CID."""
        body = json.dumps(document, ensure_ascii=False).encode("utf-8")
        try:
            return await self.storage.put(body, METADATA_FILENAME, METADATA_MEDIA_TYPE)
        except StorageBackendError as e:
            logger.error(f"Metadata upload failed: {str(e)}")
            raise UpstreamDependencyError(
                f"Metadata upload failed: {str(e)}", stage="metadata"
            )
