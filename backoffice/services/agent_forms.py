from __future__ import annotations

import logging
from typing import Any

from backoffice.core.logging import audit
from backoffice.schemas.agents import AgentFormIn
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.forms import (
    FormValidationError,
    SaveResult,
    blank,
    check_email,
    check_password,
    flush_session,
)
from backoffice.services.identity import created_id, key_of, unwrap_entity
from backoffice.services.ownership import (
    Actor,
    Owner,
    OwnerKind,
    OwnerSelection,
    default_owner,
    owner_payload,
)
from backoffice.services.staging_sessions import StagingSession

logger = logging.getLogger(__name__)

AGENTS = "agents"
AGENT_ENTITY_TYPE = "user"

_OWNER_COLLECTIONS = {
    OwnerKind.FRANCHISE: "franchises",
    OwnerKind.RELATIONSHIP_MANAGER: "relationship-managers",
}


def validate_agent_fields(form: AgentFormIn, *, creating: bool) -> dict[str, str]:
    errors: dict[str, str] = {}
    if blank(form.name):
        errors["name"] = "Name is required"
    check_email(form.email, errors)
    if blank(form.phone):
        errors["phone"] = "Phone is required"
    check_password(form.password, form.confirm_password, creating=creating, errors=errors)
    return errors


def build_owner_selection(
    actor: Actor,
    form: AgentFormIn,
    existing: Any = None,
) -> OwnerSelection:
    """Replay the form's owner picks on top of the role-based default."""
    selection = OwnerSelection.from_resolution(default_owner(actor, existing=existing))
    if form.owner_kind is not None:
        selection.select_kind(form.owner_kind)
    if form.owner_id:
        selection.select(form.owner_id)
    elif form.owner_search:
        selection.type_search(form.owner_search)
    return selection


def build_agent_payload(form: AgentFormIn, owner: Owner, *, creating: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": form.name.strip(),
        "email": form.email.strip(),
        "mobile": form.phone.strip(),
        "status": form.status or "active",
        "agentType": form.agent_type or "normal",
        **owner_payload(owner),
    }
    if creating:
        payload["role"] = "agent"
    if form.password:
        payload["password"] = form.password
    if form.kyc:
        payload["kyc"] = form.kyc
    if form.bank_details:
        payload["bankDetails"] = form.bank_details
    return payload


async def save_agent(
    client: ConsoleBackendClient,
    *,
    token: str | None,
    actor: Actor,
    form: AgentFormIn,
    agent_id: str | None = None,
    session: StagingSession | None = None,
) -> SaveResult:
    creating = not agent_id
    existing = None
    if not creating:
        existing = await client.get(AGENTS, agent_id, token=token)

    selection = build_owner_selection(actor, form, existing)
    candidates: list[Any] = []
    if not selection.owner_id and selection.search_text:
        candidates = await client.fetch_collection(_OWNER_COLLECTIONS[selection.kind], token=token)
    owner, errors = selection.resolve_for_submit(candidates)
    errors = {**validate_agent_fields(form, creating=creating), **errors}
    if errors:
        raise FormValidationError(errors=errors)

    payload = build_agent_payload(form, owner, creating=creating)
    if creating:
        response = await client.create(AGENTS, payload, token=token)
        entity_id = created_id(response)
    else:
        response = await client.update(AGENTS, agent_id, payload, token=token)
        entity_id = key_of(agent_id)

    documents, failed = await flush_session(session, entity_id)
    audit(
        "agent.created" if creating else "agent.updated",
        agent_id=entity_id,
        owner_kind=owner.kind.value,
        owner_id=owner.id,
        documents_committed=len(documents),
        documents_failed=len(failed),
    )
    return SaveResult(
        entity=unwrap_entity(response),
        entity_id=entity_id,
        created=creating,
        documents=documents,
        failed_uploads=failed,
    )
