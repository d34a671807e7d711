"""Global test fixtures and shared test infrastructure.

Provides:
- Environment variable defaults (must be set before any backoffice import)
- FakeUploader matching the document upload interface of the backend client
- FakeBackendClient, an in-memory stand-in for ConsoleBackendClient
- Record factories (make_lead, make_invoice, make_agent)
- Shared pytest fixtures for dependency overrides and an authenticated TestClient
"""

from __future__ import annotations

import os

# Environment defaults: must be set before importing the app, which triggers
# pydantic Settings validation on import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-boot")
os.environ.setdefault("BACKEND_BASE_URL", "http://backend.test/api")
os.environ.setdefault("PUBLIC_BASE_URL", "http://console.test")
os.environ.setdefault("RATE_LIMIT_STORAGE_URI", "memory://")

from typing import Any

import pytest
from fastapi.testclient import TestClient
from slowapi import Limiter
from slowapi.util import get_remote_address

from backoffice.api import deps
from backoffice.main import app
from backoffice.services.attachments import StagedFile
from backoffice.services.backend_client import BackendError
from backoffice.services.identity import key_of
from backoffice.services.staging_sessions import StagingSessionRegistry

PDF_BYTES = b"%PDF-1.4\n%test document\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

AUTH_HEADERS = {"Authorization": "Bearer test-token"}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeUploader:
    """Records uploads; filenames listed in ``fail_on`` are rejected."""

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = set(fail_on or ())
        self.calls: list[dict[str, Any]] = []

    async def upload_document(
        self,
        *,
        file: StagedFile,
        entity_type: str,
        entity_id: str,
        document_type: str,
        label: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(
            {
                "filename": file.filename,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "document_type": document_type,
                "label": label,
            }
        )
        if file.filename in self.fail_on:
            raise RuntimeError(f"upload of {file.filename} rejected")
        number = len(self.calls)
        return {
            "success": True,
            "data": {
                "_id": f"doc-{number}",
                "documentType": document_type,
                "originalFileName": file.filename,
                "url": f"https://files.test/{file.filename}",
                "verificationStatus": "pending",
                "entityType": entity_type,
                "entityId": entity_id,
                "label": label,
            },
        }

    @property
    def uploaded(self) -> list[str]:
        return [call["filename"] for call in self.calls]


class FakeBackendClient:
    """In-memory stand-in for ``ConsoleBackendClient``."""

    def __init__(
        self,
        collections: dict[str, list[Any]] | None = None,
        current_user: dict[str, Any] | None = None,
    ) -> None:
        self.collections = {name: list(rows) for name, rows in (collections or {}).items()}
        self.user = current_user or {"_id": "admin-1", "role": "super_admin", "name": "Admin"}
        self.uploader = FakeUploader()
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.updated: list[tuple[str, str, dict[str, Any]]] = []
        self.bound_tokens: list[str | None] = []
        self.fetched: list[str] = []
        self.fail_create: BackendError | None = None

    async def fetch_collection(self, resource: str, *, token: str | None, params=None) -> list[Any]:
        self.fetched.append(resource)
        return list(self.collections.get(resource, []))

    async def get(self, resource: str, entity_id: str, *, token: str | None) -> Any:
        for row in self.collections.get(resource, []):
            if key_of(row) == entity_id:
                return row
        raise BackendError(status_code=404, message=f"{resource} {entity_id} not found")

    async def create(self, resource: str, payload: dict[str, Any], *, token: str | None) -> Any:
        if self.fail_create is not None:
            raise self.fail_create
        record = {"_id": f"{resource}-new-{len(self.created) + 1}", **payload}
        self.created.append((resource, dict(payload)))
        self.collections.setdefault(resource, []).append(record)
        return {"success": True, "data": record}

    async def update(
        self, resource: str, entity_id: str, payload: dict[str, Any], *, token: str | None
    ) -> Any:
        self.updated.append((resource, entity_id, dict(payload)))
        return {"success": True, "data": {"_id": entity_id, **payload}}

    async def current_user(self, *, token: str | None) -> Any:
        return {"user": self.user}

    def bind(self, token: str | None) -> FakeUploader:
        self.bound_tokens.append(token)
        return self.uploader


# ---------------------------------------------------------------------------
# Record factories
# ---------------------------------------------------------------------------


def make_lead(**overrides: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = dict(
        _id="lead-1",
        agent={"_id": "A1", "name": "Asha"},
        franchise="F1",
        bank="B1",
        status="logged",
        loanAmount=50000,
    )
    defaults.update(overrides)
    return defaults


def make_invoice(**overrides: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = dict(
        _id="inv-1",
        agent="A1",
        franchise="F1",
        commissionAmount=500,
    )
    defaults.update(overrides)
    return defaults


def make_agent(**overrides: Any) -> dict[str, Any]:
    defaults: dict[str, Any] = dict(
        _id="A1",
        name="Asha",
        managedBy={"_id": "F1", "name": "North Zone"},
        managedByModel="Franchise",
    )
    defaults.update(overrides)
    return defaults


def staged_pdf(name: str = "doc.pdf") -> StagedFile:
    return StagedFile(filename=name, content=PDF_BYTES, content_type="application/pdf")


# ---------------------------------------------------------------------------
# Shared pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Swap in a limiter without default limits for all tests."""
    original = app.state.limiter
    app.state.limiter = Limiter(
        key_func=get_remote_address,
        storage_uri="memory://",
    )
    yield
    app.state.limiter = original


@pytest.fixture
def fake_backend() -> FakeBackendClient:
    return FakeBackendClient()


@pytest.fixture
def registry() -> StagingSessionRegistry:
    return StagingSessionRegistry(ttl_minutes=60, preview_url_builder=deps.build_preview_url)


@pytest.fixture
def override_deps(fake_backend, registry):
    """Standard dependency overrides: backend client and staging registry."""

    app.dependency_overrides[deps.get_backend_client] = lambda: fake_backend
    app.dependency_overrides[deps.get_staging_registry] = lambda: registry

    yield

    app.dependency_overrides.clear()


@pytest.fixture
def client(override_deps) -> TestClient:
    return TestClient(app, headers=AUTH_HEADERS)
