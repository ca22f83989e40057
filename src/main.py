"""Entry point for the outbound lead-qualification voice service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes import router as api_router
from api.schemas import HealthResponse
from calls.errors import VoiceCallError
from calls.registry import CallSessionRegistry
from config.settings import get_settings
from db.base import init_db

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    registry = CallSessionRegistry(
        max_age_seconds=settings.session_max_age_seconds,
        sweep_interval_seconds=settings.session_sweep_interval_seconds,
    )
    registry.start_sweeper()
    app.state.call_registry = registry
    try:
        yield
    finally:
        await registry.stop()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Outbound Voice Agent",
    description="Calls new leads and runs a short qualifying voice conversation.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")


@app.exception_handler(VoiceCallError)
async def voice_call_error_handler(request: Request, exc: VoiceCallError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(live_calls=len(request.app.state.call_registry))
