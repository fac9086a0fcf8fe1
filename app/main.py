from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from app.rate_limit import install_rate_limit
from logging_config import configure_logging
from services.rate_limiter import FixedWindowRateLimiter
from services.scheduler import build_scheduler
from services.sync import build_default_orchestrator
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    orchestrator = build_default_orchestrator()
    scheduler = build_scheduler(orchestrator, get_settings().sync_interval_minutes)
    if scheduler is not None:
        scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        orchestrator.shutdown()
        build_default_orchestrator.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="Weather Sync",
        description="Tracks locations and keeps their weather data fresh.",
        version="0.1.0",
        lifespan=lifespan,
    )
    install_rate_limit(app, FixedWindowRateLimiter(), settings.rate_limit_per_minute)
    app.include_router(router)
    return app

app = create_app()
