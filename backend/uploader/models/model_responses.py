# models/model_responses.py
from pydantic import BaseModel, Field
from typing import Optional


class UploadResult(BaseModel):
    image_cid: str = Field(..., alias="imageCid", description="CID of the binary asset")
    image_url: str = Field(..., alias="imageUrl", description="ipfs:// URI of the asset")
    metadata_cid: str = Field(
        ..., alias="metadataCid", description="CID of the merged metadata document"
    )
    metadata_url: str = Field(
        ..., alias="metadataUrl", description="ipfs:// URI of the metadata document"
    )

    class Config:
        frozen = True
        populate_by_name = True


class UploadResponse(UploadResult):
    ok: bool = Field(True, description="Always true on success")


class MetadataUploadResponse(BaseModel):
    ok: bool = Field(True, description="Always true on success")
    metadata_cid: str = Field(..., alias="metadataCid")
    token_uri: str = Field(..., alias="tokenURI")

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    ok: bool = Field(False, description="Always false on failure")
    error: str = Field(..., description="Human-readable failure message")
    kind: str = Field(..., description="Failure classification")
    stage: Optional[str] = Field(None, description="Pipeline stage that failed")
