from fastapi import APIRouter, Depends, status

from backoffice.api import deps
from backoffice.api.v1.routers.agents import (
    close_staging_session,
    resolve_staging_session,
    save_result_dto,
)
from backoffice.schemas.agents import SaveResultDTO
from backoffice.schemas.franchises import FranchiseFormIn
from backoffice.services import franchise_forms
from backoffice.services.franchise_forms import FRANCHISE_ENTITY_TYPE
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.ownership import Actor
from backoffice.services.staging_sessions import StagingSessionRegistry

router = APIRouter(prefix="/franchises", tags=["franchises"])


@router.post(
    "",
    response_model=SaveResultDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a franchise and upload its staged documents",
)
async def create_franchise(
    form: FranchiseFormIn,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> SaveResultDTO:
    session = resolve_staging_session(
        registry,
        form.staging_session_id,
        entity_type=FRANCHISE_ENTITY_TYPE,
        actor=actor,
        client=client,
        token=token,
    )
    result = await franchise_forms.save_franchise(client, token=token, form=form, session=session)
    close_staging_session(registry, session, result, actor=actor)
    return save_result_dto(result)


@router.put("/{franchise_id}", response_model=SaveResultDTO, summary="Update a franchise")
async def update_franchise(
    franchise_id: str,
    form: FranchiseFormIn,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> SaveResultDTO:
    session = resolve_staging_session(
        registry,
        form.staging_session_id,
        entity_type=FRANCHISE_ENTITY_TYPE,
        actor=actor,
        client=client,
        token=token,
    )
    result = await franchise_forms.save_franchise(
        client,
        token=token,
        form=form,
        franchise_id=franchise_id,
        session=session,
    )
    close_staging_session(registry, session, result, actor=actor)
    return save_result_dto(result)
