from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from backoffice.core.context import get_request_id
from backoffice.services.attachments import StagedFile
from backoffice.services.identity import unwrap_collection, unwrap_entity

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


@dataclass(frozen=True)
class BackendError(Exception):
    status_code: int | None
    message: str
    details: dict = field(default_factory=dict)
    code: str = "backend_error"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class BackendAuthError(BackendError):
    code: str = "unauthorized"


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


def _error_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, Mapping):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP error! status: {status_code}"


class ConsoleBackendClient:
    """
    Thin REST client for the loan-origination backend.

    - One AsyncClient per process (connection pooling); tests inject their own.
    - Every call forwards the console user's bearer token.
    - Non-2xx raises BackendError; 401 raises BackendAuthError.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_seconds: float = 20.0,
        max_error_body_chars: int = 2_000,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._max_body = max_error_body_chars
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        request_id = get_request_id()
        if request_id and request_id != "-":
            headers["X-Request-Id"] = request_id
        return headers

    async def request(
        self,
        method: HttpMethod,
        path: str,
        *,
        token: str | None,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, tuple[str, bytes, str]] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(
                method,
                self._url(path),
                headers=self._headers(token),
                params={k: v for k, v in (params or {}).items() if v is not None},
                json=json_body,
                data=data,
                files=files,
            )
        except httpx.TimeoutException as exc:
            raise BackendError(
                status_code=None,
                message="Backend request timed out",
                details={"path": path},
                code="backend_timeout",
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(
                status_code=None,
                message="Backend unreachable",
                details={"path": path, "error": str(exc)},
                code="backend_unreachable",
            ) from exc

        if _is_json_response(resp):
            try:
                payload: Any = resp.json()
            except ValueError:
                payload = {"raw": _cap_text(resp.text, max_chars=self._max_body)}
        else:
            payload = resp.text

        if 200 <= resp.status_code < 300:
            return payload

        message = _error_message(payload, resp.status_code)
        details = {"path": path, "status_code": resp.status_code}
        if isinstance(payload, str) and payload:
            details["raw"] = _cap_text(payload, max_chars=self._max_body)
        if resp.status_code == 401:
            raise BackendAuthError(status_code=401, message=message, details=details)
        raise BackendError(status_code=resp.status_code, message=message, details=details)

    async def list_collection(
        self,
        resource: str,
        *,
        token: str | None,
        params: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        return unwrap_collection(await self.request("GET", resource, token=token, params=params))

    async def fetch_collection(
        self,
        resource: str,
        *,
        token: str | None,
        params: Mapping[str, Any] | None = None,
    ) -> list[Any]:
        """List a collection for read-only aggregation.

        Backend failures other than an expired session degrade to an empty list.
        """
        try:
            return await self.list_collection(resource, token=token, params=params)
        except BackendAuthError:
            raise
        except BackendError as exc:
            logger.warning("Fetching %s failed, using empty list: %s", resource, exc)
            return []

    async def get(self, resource: str, entity_id: str, *, token: str | None) -> Any:
        payload = await self.request("GET", f"{resource}/{entity_id}", token=token)
        return unwrap_entity(payload)

    async def create(self, resource: str, payload: Mapping[str, Any], *, token: str | None) -> Any:
        return await self.request("POST", resource, token=token, json_body=dict(payload))

    async def update(
        self,
        resource: str,
        entity_id: str,
        payload: Mapping[str, Any],
        *,
        token: str | None,
    ) -> Any:
        return await self.request("PUT", f"{resource}/{entity_id}", token=token, json_body=dict(payload))

    async def current_user(self, *, token: str | None) -> Any:
        return unwrap_entity(await self.request("GET", "auth/me", token=token))

    async def upload_document(
        self,
        *,
        token: str | None,
        file: StagedFile,
        entity_type: str,
        entity_id: str,
        document_type: str,
        label: str | None = None,
    ) -> Any:
        form = {
            "entityType": entity_type,
            "entityId": entity_id,
            "documentType": document_type,
        }
        if label:
            form["label"] = label
        return await self.request(
            "POST",
            "documents",
            token=token,
            data=form,
            files={"file": (file.filename, file.content, file.content_type)},
        )

    async def ping(self) -> None:
        # Any HTTP answer proves reachability; auth failures are expected without a token.
        try:
            await self._client.get(self.base_url, timeout=5.0)
        except httpx.HTTPError as exc:
            raise BackendError(
                status_code=None,
                message="Backend unreachable",
                details={"error": str(exc)},
                code="backend_unreachable",
            ) from exc

    def bind(self, token: str | None) -> BoundUploader:
        return BoundUploader(self, token)


class BoundUploader:
    """Document uploader carrying one user's bearer token."""

    def __init__(self, client: ConsoleBackendClient, token: str | None) -> None:
        self._client = client
        self._token = token

    async def upload_document(
        self,
        *,
        file: StagedFile,
        entity_type: str,
        entity_id: str,
        document_type: str,
        label: str | None = None,
    ) -> Any:
        return await self._client.upload_document(
            token=self._token,
            file=file,
            entity_type=entity_type,
            entity_id=entity_id,
            document_type=document_type,
            label=label,
        )


_shared_client: ConsoleBackendClient | None = None


def get_backend_client() -> ConsoleBackendClient:
    global _shared_client
    if _shared_client is None:
        from backoffice.core.settings import settings

        _shared_client = ConsoleBackendClient(
            base_url=settings.backend_base_url,
            timeout_seconds=settings.backend_timeout_seconds,
        )
    return _shared_client


async def close_backend_client() -> None:
    global _shared_client
    if _shared_client is not None:
        await _shared_client.aclose()
        _shared_client = None
