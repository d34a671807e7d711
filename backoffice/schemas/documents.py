from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DocumentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_type: str
    original_file_name: str
    url: str
    verification_status: str
    entity_type: str = ""
    entity_id: str = ""
    label: str | None = None


class FailedUploadDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    doc_type: str
    filename: str
    label: str | None = None
    error: str


class StagedAttachmentDTO(BaseModel):
    id: str
    doc_type: str
    filename: str
    content_type: str
    size_bytes: int
    label: str | None = None
    state: str
    sequence: int
    document: DocumentDTO | None = None


class StagingSessionCreate(BaseModel):
    entity_type: Literal["user", "franchise"]
    entity_id: str | None = Field(
        default=None, description="Set when editing an existing entity; uploads then go out immediately"
    )


class StagingSessionDTO(BaseModel):
    id: str
    entity_type: str
    entity_id: str | None = None
    expires_at: datetime
    slots: dict[str, StagedAttachmentDTO]
    additional: list[StagedAttachmentDTO]
    documents: list[DocumentDTO]


class PreviewCreate(BaseModel):
    attachment_id: str | None = None
    doc_type: str | None = None
    index: int | None = Field(default=None, ge=0)


class PreviewDTO(BaseModel):
    url: str
    token: str | None = None
    temporary: bool


class FlushRequest(BaseModel):
    entity_id: str = Field(min_length=1)


class FlushReportDTO(BaseModel):
    entity_id: str
    committed: list[DocumentDTO]
    failed: list[FailedUploadDTO]
