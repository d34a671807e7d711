import logging

from fastapi import FastAPI

from backoffice.services.backend_client import close_backend_client, get_backend_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        client = get_backend_client()
        logger.info("Application startup, backend=%s", client.base_url)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        await close_backend_client()
