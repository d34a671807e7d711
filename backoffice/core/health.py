from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from backoffice.core.settings import settings
from backoffice.services.backend_client import BackendError, get_backend_client

APP_VERSION = "0.1.0"


async def _check_backend() -> dict[str, str]:
    try:
        await get_backend_client().ping()
        return {"status": "ok"}
    except BackendError as exc:
        return {"status": "error", "error": exc.message}


async def _check_api() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "api": await _check_api(),
        "backend": await _check_backend(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
