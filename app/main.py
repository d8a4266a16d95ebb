"""FastAPI application entry point with lifespan management."""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI
from loguru import logger

from app.config import get_settings
from app.database import engine
from app.services.price_cache import PriceCache
from app.utils.logging import setup_logging
from app.workers.jobs import build_ingestion_job
from app.workers.scheduler import register_jobs, scheduler
from app.api.health import router as health_router
from app.api.ingestion import router as ingestion_router
from app.api.prices import router as prices_router
from app.api.snapshots import router as snapshots_router
from app.api.status import router as status_router
from app.api.trades import router as trades_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: setup on startup, teardown on shutdown."""
    settings = get_settings()

    # Configure structured logging first so all startup logs are formatted
    setup_logging(settings.log_level, settings.log_json)

    scheduler.start()
    register_jobs(app.state.ingestion_job)
    logger.info("MetalVault application started | currency={currency}", currency=settings.currency)

    yield

    scheduler.shutdown(wait=False)
    await engine.dispose()
    logger.info("MetalVault application stopped")


app = FastAPI(
    title="MetalVault",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.price_cache = PriceCache()
app.state.ingestion_job = build_ingestion_job(app.state.price_cache)

app.include_router(health_router)
app.include_router(status_router)
app.include_router(prices_router)
app.include_router(snapshots_router)
app.include_router(trades_router)
app.include_router(ingestion_router)
