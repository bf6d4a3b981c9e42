from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from app.api.request_context import app_error_handler, request_id_middleware
from app.api.routes.health import router as health_router
from app.api.routes.oauth_callback import router as oauth_callback_router
from app.api.routes.purchase_webhook import router as purchase_webhook_router
from app.api.routes.redirects import router as redirects_router
from app.core.config import get_settings
from app.core.errors import AppError
from app.core.logging import configure_logging
from app.db.session import dispose_engine
from app.services.discord_api import close_discord_gateway
from app.services.notifications import get_orchestrator

SHUTDOWN_DRAIN_TIMEOUT_SECONDS = 10.0

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await get_orchestrator().drain(timeout_seconds=SHUTDOWN_DRAIN_TIMEOUT_SECONDS)
    await close_discord_gateway()
    await dispose_engine()
    logger.info("app_shutdown_complete")


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Mentorship Entitlements API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(health_router)
    app.include_router(purchase_webhook_router)
    app.include_router(oauth_callback_router)
    # Catch-all short-link route must stay last.
    app.include_router(redirects_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
