from typing import Any

from pydantic import BaseModel, Field

from backoffice.schemas.documents import DocumentDTO, FailedUploadDTO
from backoffice.services.ownership import OwnerKind


class AgentFormIn(BaseModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    password: str | None = None
    confirm_password: str | None = None
    status: str = "active"
    agent_type: str = "normal"
    owner_kind: OwnerKind | None = None
    owner_id: str | None = None
    owner_search: str | None = Field(
        default=None,
        description="Text typed into the owner picker; binds at submit when it names exactly one owner",
    )
    kyc: dict[str, Any] | None = None
    bank_details: dict[str, Any] | None = None
    staging_session_id: str | None = None


class SaveResultDTO(BaseModel):
    entity_id: str
    created: bool
    entity: dict[str, Any] | None = None
    documents: list[DocumentDTO] = []
    failed_uploads: list[FailedUploadDTO] = []
