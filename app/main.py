from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.ecowitt import build_default_client
from services.history import build_default_resolver
from services.poller import BackgroundPoller, build_default_poller
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    poller = build_default_poller()
    background: BackgroundPoller | None = None
    interval = get_settings().background_poll_seconds
    if interval > 0:
        background = BackgroundPoller(poller, interval)
        background.start()
    try:
        yield
    finally:
        if background is not None:
            background.stop()
        poller.shutdown()
        build_default_client().close()
        build_default_poller.cache_clear()
        build_default_resolver.cache_clear()
        build_default_client.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="PlantPulse",
        description="Soil-moisture readings and chart-ready history for the plant dashboard.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
