from collections.abc import Mapping

from fastapi import APIRouter, Depends, HTTPException, status

from backoffice.api import deps
from backoffice.api.v1.routers.staging import session_http_error
from backoffice.schemas.agents import AgentFormIn, SaveResultDTO
from backoffice.schemas.documents import DocumentDTO, FailedUploadDTO
from backoffice.services import agent_forms
from backoffice.services.agent_forms import AGENT_ENTITY_TYPE
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.forms import SaveResult
from backoffice.services.ownership import Actor
from backoffice.services.staging_sessions import (
    StagingSession,
    StagingSessionError,
    StagingSessionRegistry,
)

router = APIRouter(prefix="/agents", tags=["agents"])


def resolve_staging_session(
    registry: StagingSessionRegistry,
    session_id: str | None,
    *,
    entity_type: str,
    actor: Actor,
    client: ConsoleBackendClient,
    token: str,
) -> StagingSession | None:
    if not session_id:
        return None
    try:
        session = registry.get(session_id, actor_id=actor.id)
    except StagingSessionError as exc:
        raise session_http_error(exc) from exc
    if session.entity_type != entity_type:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "staging_session_entity_mismatch",
                "message": f"Staging session holds {session.entity_type} documents, not {entity_type}",
            },
        )
    session.stager.use_uploader(client.bind(token))
    return session


def save_result_dto(result: SaveResult) -> SaveResultDTO:
    return SaveResultDTO(
        entity_id=result.entity_id,
        created=result.created,
        entity=dict(result.entity) if isinstance(result.entity, Mapping) else None,
        documents=[DocumentDTO.model_validate(doc) for doc in result.documents],
        failed_uploads=[FailedUploadDTO.model_validate(item) for item in result.failed_uploads],
    )


def close_staging_session(
    registry: StagingSessionRegistry,
    session: StagingSession | None,
    result: SaveResult,
    *,
    actor: Actor,
) -> None:
    # Without an entity id the staged files were never sent; keep them for a retry.
    if session is not None and result.entity_id:
        registry.discard(session.id, actor_id=actor.id)


@router.post(
    "",
    response_model=SaveResultDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create an agent and upload its staged documents",
)
async def create_agent(
    form: AgentFormIn,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> SaveResultDTO:
    session = resolve_staging_session(
        registry,
        form.staging_session_id,
        entity_type=AGENT_ENTITY_TYPE,
        actor=actor,
        client=client,
        token=token,
    )
    result = await agent_forms.save_agent(client, token=token, actor=actor, form=form, session=session)
    close_staging_session(registry, session, result, actor=actor)
    return save_result_dto(result)


@router.put("/{agent_id}", response_model=SaveResultDTO, summary="Update an agent")
async def update_agent(
    agent_id: str,
    form: AgentFormIn,
    token: str = Depends(deps.get_token),
    actor: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
    registry: StagingSessionRegistry = Depends(deps.get_staging_registry),
) -> SaveResultDTO:
    session = resolve_staging_session(
        registry,
        form.staging_session_id,
        entity_type=AGENT_ENTITY_TYPE,
        actor=actor,
        client=client,
        token=token,
    )
    result = await agent_forms.save_agent(
        client,
        token=token,
        actor=actor,
        form=form,
        agent_id=agent_id,
        session=session,
    )
    close_staging_session(registry, session, result, actor=actor)
    return save_result_dto(result)
