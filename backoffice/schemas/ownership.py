from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backoffice.services.ownership import OwnerKind, OwnerSource


class OwnerDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: OwnerKind
    id: str = ""


class OwnerDefaultsRequest(BaseModel):
    agent_id: str | None = Field(
        default=None, description="Existing agent being edited; loaded from the backend"
    )
    existing: dict[str, Any] | None = Field(
        default=None, description="Existing agent record when the caller already holds it"
    )
    fixed: OwnerDTO | None = Field(
        default=None, description="Parent context that pins the owner, e.g. a franchise detail page"
    )


class OwnerResolutionDTO(BaseModel):
    owner: OwnerDTO
    locked: bool
    source: OwnerSource
    required_message: str
