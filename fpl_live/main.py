"""Main FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tenacity import wait_exponential

from fpl_live.api.live import router
from fpl_live.config import get_settings
from fpl_live.db import close_pool, init_pool
from fpl_live.services.fpl_client import FplApiClient
from fpl_live.services.live_cache import BootstrapCache
from fpl_live.services.polling import LivePollingCoordinator
from fpl_live.services.result_store import (
    InMemoryResultStore,
    PostgresResultStore,
    ResultStore,
)
from fpl_live.services.snapshots import FplSnapshotProvider

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="FPL Live Engine",
    description="Live BPS rankings, predicted bonus and team totals during a gameweek",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


async def _create_store() -> ResultStore:
    if not settings.database_url:
        logger.info("DATABASE_URL not set, keeping live results in memory")
        return InMemoryResultStore()
    pool = await init_pool()
    return PostgresResultStore(pool)


@app.on_event("startup")
async def startup_event() -> None:
    """Create the FPL client and live polling coordinator."""
    logger.info("Starting FPL Live Engine")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    logger.info(f"FPL API base: {settings.fpl_api_base_url}")

    base_url = settings.fpl_api_base_url.rstrip("/")
    client = FplApiClient(
        base_url=base_url,
        requests_per_second=settings.requests_per_second,
        max_concurrent=settings.max_concurrent_requests,
        bootstrap_cache=BootstrapCache(
            f"{base_url}/bootstrap-static/", ttl=settings.cache_ttl_bootstrap
        ),
    )
    app.state.fpl_client = client
    app.state.coordinator = LivePollingCoordinator(
        FplSnapshotProvider(client),
        await _create_store(),
        interval_seconds=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        retry_wait=wait_exponential(
            multiplier=1, min=1, max=settings.poll_backoff_max_seconds
        ),
        check_bps=settings.poll_check_bps,
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Stop live polling and release connections."""
    logger.info("Shutting down FPL Live Engine")
    coordinator = getattr(app.state, "coordinator", None)
    if coordinator is not None:
        await coordinator.stop()
    client = getattr(app.state, "fpl_client", None)
    if client is not None:
        await client.close()
    await close_pool()
