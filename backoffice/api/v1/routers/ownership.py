from fastapi import APIRouter, Depends

from backoffice.api import deps
from backoffice.schemas.ownership import OwnerDefaultsRequest, OwnerDTO, OwnerResolutionDTO
from backoffice.services import ownership
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.ownership import Actor

router = APIRouter(prefix="/ownership", tags=["ownership"])


@router.post(
    "/defaults",
    response_model=OwnerResolutionDTO,
    summary="Default owner for an agent form opened by the current user",
)
async def get_owner_defaults(
    payload: OwnerDefaultsRequest,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
) -> OwnerResolutionDTO:
    existing = payload.existing
    if existing is None and payload.agent_id:
        existing = await client.get("agents", payload.agent_id, token=token)
    fixed = payload.fixed.model_dump() if payload.fixed is not None else None
    resolution = ownership.default_owner(actor, existing=existing, fixed=fixed)
    return OwnerResolutionDTO(
        owner=OwnerDTO(kind=resolution.owner.kind, id=resolution.owner.id),
        locked=resolution.locked,
        source=resolution.source,
        required_message=ownership.required_message(resolution.owner.kind),
    )
