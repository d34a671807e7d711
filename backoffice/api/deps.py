from collections.abc import Mapping
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backoffice.core.context import set_actor_id
from backoffice.core.settings import settings
from backoffice.core.signing import signed_url
from backoffice.services import backend_client
from backoffice.services.backend_client import ConsoleBackendClient
from backoffice.services.identity import first_key, key_of
from backoffice.services.ownership import Actor
from backoffice.services.staging_sessions import StagingSessionRegistry

bearer_scheme = HTTPBearer(auto_error=False)

PREVIEW_PATH = "/api/v1/staging-sessions/{session_id}/previews/{token}"


async def get_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_backend_client() -> ConsoleBackendClient:
    return backend_client.get_backend_client()


def actor_from_payload(payload: Any) -> Actor:
    user = payload
    if isinstance(payload, Mapping) and isinstance(payload.get("user"), Mapping):
        user = payload["user"]
    if not isinstance(user, Mapping):
        return Actor(id="", role="")
    franchise = user.get("franchise")
    if franchise is None:
        franchise = user.get("franchiseId")
    return Actor(
        id=first_key(user.get("_id"), user.get("id")),
        role=str(user.get("role") or ""),
        name=str(user.get("name") or ""),
        franchise=franchise,
    )


async def get_actor(
    token: str = Depends(get_token),
    client: ConsoleBackendClient = Depends(get_backend_client),
) -> Actor:
    actor = actor_from_payload(await client.current_user(token=token))
    if not actor.id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not resolve the signed-in user",
        )
    set_actor_id(key_of(actor.id))
    return actor


def preview_path(session_id: str, token: str) -> str:
    return PREVIEW_PATH.format(session_id=session_id, token=token)


def build_preview_url(session_id: str, token: str) -> str:
    return signed_url(
        settings.secret_key,
        settings.public_base_url,
        preview_path(session_id, token),
        ttl_seconds=settings.preview_ttl_seconds,
    )


_staging_registry: StagingSessionRegistry | None = None


def get_staging_registry() -> StagingSessionRegistry:
    global _staging_registry
    if _staging_registry is None:
        _staging_registry = StagingSessionRegistry(
            ttl_minutes=settings.staging_session_ttl_minutes,
            preview_url_builder=build_preview_url,
        )
    return _staging_registry
