from fastapi import APIRouter

from backoffice.core.health import live_payload, ready_payload
from backoffice.core.limiter import limiter

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health/ready", summary="Readiness check including backend reachability")
@limiter.exempt
async def health_ready() -> dict:
    return await ready_payload()
