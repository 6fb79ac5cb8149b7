# models/model_part.py
from pydantic import BaseModel, Field
from typing import List, Optional

DEFAULT_MEDIA_TYPE = "application/octet-stream"


class Part(BaseModel):
    """One fully decoded multipart segment."""

    field_name: str = Field(..., description="Name from the Content-Disposition header")
    file_name: Optional[str] = Field(
        None, description="Filename from the Content-Disposition header, if any"
    )
    declared_media_type: str = Field(
        DEFAULT_MEDIA_TYPE, description="Content-Type declared for the part"
    )
    payload: bytes = Field(b"", description="Raw part body")

    class Config:
        frozen = True

    @property
    def byte_count(self) -> int:
        return len(self.payload)

    @property
    def is_file(self) -> bool:
        return self.file_name is not None


class UploadRequest(BaseModel):
    """The parts of a request that take part in the upload pipeline."""

    binary: Part
    metadata: Optional[Part] = None
    fields: List[Part] = Field(
        default_factory=list, description="Plain form fields, kept as name/value pairs"
    )

    class Config:
        frozen = True
