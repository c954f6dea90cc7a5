"""FastAPI server for the Lynx SDR agent.

Run with:
    uvicorn lynx_sdr.server:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from lynx_sdr.api.routes import router
from lynx_sdr.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, SLOT_CACHE_SWEEP_SECONDS
from lynx_sdr.db import create_db_engine
from lynx_sdr.orchestrator import create_orchestrator
from lynx_sdr.services.metrics import metrics
from lynx_sdr.services.slot_cache import SlotCache

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


async def sweep_slot_cache(cache: SlotCache, interval_seconds: float) -> None:
    """Run ``cache.sweep()`` every *interval_seconds* until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        cache.sweep()


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: open the database, wire the orchestrator and start the
    slot-cache sweeper.  Shutdown: stop the sweeper, flush metrics and
    dispose of the engine."""
    engine = create_db_engine()
    slot_cache = SlotCache()
    application.state.slot_cache = slot_cache
    application.state.orchestrator = create_orchestrator(engine, slot_cache=slot_cache)
    sweeper = asyncio.create_task(sweep_slot_cache(slot_cache, SLOT_CACHE_SWEEP_SECONDS))
    logger.info("Lynx SDR ready.")
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        metrics.flush()
        engine.dispose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Lynx SDR",
    description=(
        "Conversational SDR agent — qualifies leads, records them in the CRM "
        "and books meetings with the sales team."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Lynx SDR",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


def main() -> None:
    logger.info("Starting Lynx SDR API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("lynx_sdr.server:app", host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    main()
