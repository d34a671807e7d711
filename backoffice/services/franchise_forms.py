from __future__ import annotations

from typing import Any

from backoffice.core.logging import audit
from backoffice.schemas.franchises import FranchiseFormIn
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.forms import FormValidationError, SaveResult, blank, flush_session
from backoffice.services.identity import created_id, key_of, unwrap_entity
from backoffice.services.staging_sessions import StagingSession

FRANCHISES = "franchises"
FRANCHISE_ENTITY_TYPE = "franchise"


def validate_franchise_fields(form: FranchiseFormIn) -> dict[str, str]:
    errors: dict[str, str] = {}
    if blank(form.name):
        errors["name"] = "Franchise name is required"
    if blank(form.owner_name):
        errors["ownerName"] = "Owner name is required"
    return errors


def build_franchise_payload(form: FranchiseFormIn) -> dict[str, Any]:
    return {
        "name": form.name.strip(),
        "ownerName": form.owner_name.strip(),
        "email": form.email.strip(),
        "mobile": form.mobile.strip(),
        "status": form.status or "active",
        "address": form.address.model_dump(),
    }


async def save_franchise(
    client: ConsoleBackendClient,
    *,
    token: str | None,
    form: FranchiseFormIn,
    franchise_id: str | None = None,
    session: StagingSession | None = None,
) -> SaveResult:
    errors = validate_franchise_fields(form)
    if errors:
        raise FormValidationError(errors=errors)

    creating = not franchise_id
    payload = build_franchise_payload(form)
    if creating:
        response = await client.create(FRANCHISES, payload, token=token)
        entity_id = created_id(response)
    else:
        response = await client.update(FRANCHISES, franchise_id, payload, token=token)
        entity_id = key_of(franchise_id)

    documents, failed = await flush_session(session, entity_id)
    audit(
        "franchise.created" if creating else "franchise.updated",
        franchise_id=entity_id,
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
