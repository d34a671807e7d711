import asyncio

from fastapi import APIRouter, Depends

from backoffice.api import deps
from backoffice.schemas.stats import RollupDTO, RollupRowDTO, StatRecordDTO
from backoffice.services import stats as stats_service
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.ownership import Actor
from backoffice.services.stats import StatsKind

router = APIRouter(prefix="/stats", tags=["stats"])

_ENTITY_COLLECTIONS = {
    StatsKind.AGENT: "agents",
    StatsKind.FRANCHISE: "franchises",
    StatsKind.BANK: "banks",
    StatsKind.RELATIONSHIP_MANAGER: "relationship-managers",
}


@router.get(
    "/{kind}",
    response_model=RollupDTO,
    summary="Per-entity lead and commission figures for a list page",
)
async def get_rollup(
    kind: StatsKind,
    token: str = Depends(deps.get_token),
    _: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
) -> RollupDTO:
    needs_agents = kind in (StatsKind.FRANCHISE, StatsKind.RELATIONSHIP_MANAGER)
    entities, leads, invoices, agents = await asyncio.gather(
        client.fetch_collection(_ENTITY_COLLECTIONS[kind], token=token),
        client.fetch_collection("leads", token=token),
        client.fetch_collection("invoices", token=token),
        client.fetch_collection("agents", token=token) if needs_agents else _no_rows(),
    )
    result = stats_service.rollup(kind, entities, leads=leads, invoices=invoices, agents=agents)
    return RollupDTO(
        kind=result.kind.value,
        rows=[
            RollupRowDTO(
                id=row.id,
                name=row.name,
                stats=StatRecordDTO.model_validate(row.stats),
                agent_count=row.agent_count,
            )
            for row in result.rows
        ],
        totals=StatRecordDTO.model_validate(result.totals),
        agent_count=result.agent_count,
    )


@router.get(
    "/{kind}/{target_id}",
    response_model=StatRecordDTO,
    summary="Lead and commission figures for one agent, franchise or bank",
)
async def get_entity_stats(
    kind: StatsKind,
    target_id: str,
    token: str = Depends(deps.get_token),
    _: Actor = Depends(deps.get_actor),
    client: ConsoleBackendClient = Depends(deps.get_backend_client),
) -> StatRecordDTO:
    leads, invoices = await asyncio.gather(
        client.fetch_collection("leads", token=token),
        client.fetch_collection("invoices", token=token),
    )
    record = stats_service.stats_for(kind, target_id, leads=leads, invoices=invoices)
    return StatRecordDTO.model_validate(record)


async def _no_rows() -> list:
    return []
