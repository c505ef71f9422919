"""FastAPI application for the smart-link service.

Run:
    uv run uvicorn api.smartlink.app:app --port 3000
    uv run python main.py serve
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from loguru import logger

from api.smartlink.routes import router
from db.client import close_db
from services.smartlink.auto_checker import AutoChecker
from services.smartlink.config import SmartLinkConfig
from services.smartlink.service import SmartLinkService


def create_app(
    service: Optional[SmartLinkService] = None,
    checker: Optional[AutoChecker] = None,
    config: Optional[SmartLinkConfig] = None,
) -> FastAPI:
    """Build the app. The auto-checker runs alongside the web server when enabled."""
    config = config or (service.config if service else SmartLinkConfig.from_env())
    service = service or SmartLinkService(config=config)
    if checker is None and config.auto_check_enabled:
        checker = AutoChecker(service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if checker is not None:
            checker.start()
        try:
            yield
        finally:
            if checker is not None:
                await checker.stop()
            await service.aclose()
            await close_db()
            logger.info("Smart-link service shut down")

    app = FastAPI(title="Smart-Link Resolution Engine", lifespan=lifespan)
    app.state.service = service
    app.state.checker = checker

    # GET /go/{slug}, GET /health, POST /api/endpoints/{id}/check
    app.include_router(router)
    return app


app = create_app()
