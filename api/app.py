# api/app.py
import logging
import threading
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from api.context import AppContext
from api.routes import router
from constants import APP_NAME, APP_VERSION
from infra.config import AppConfig, load_config
from infra.error_handler import GlobalErrorHandler
from infra.errors import HermesError

logger = logging.getLogger(__name__)


def _startup_refresh(ctx: AppContext) -> None:
    try:
        result = ctx.coordinator.refresh()
        logger.info(f"Startup sync collected {result.collected} events ({len(result.warnings)} warnings)")
    except HermesError as e:
        logger.warning(f"Startup sync failed: {e}")


def create_app(config: Optional[AppConfig] = None, context: Optional[AppContext] = None) -> FastAPI:
    """Build the service around one AppContext stored on ``app.state``."""
    if context is None:
        context = AppContext.build(config or load_config())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context.settings.get_ingest_profile().auto_sync_on_startup:
            logger.info("Auto sync on startup is enabled; refreshing in the background")
            threading.Thread(target=_startup_refresh, args=(context,), name="startup-sync", daemon=True).start()
        yield

    app = FastAPI(
        title=APP_NAME,
        description="Local event log and crash correlation service",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.state.context = context
    GlobalErrorHandler(app)
    app.include_router(router)
    return app
