from fastapi import APIRouter

from backoffice.api.v1.routers import (
    agents,
    franchises,
    health,
    ownership,
    staging,
    stats,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(stats.router)
api_router.include_router(ownership.router)
api_router.include_router(staging.router)
api_router.include_router(agents.router)
api_router.include_router(franchises.router)

__all__ = ["api_router"]
