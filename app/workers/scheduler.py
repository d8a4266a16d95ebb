"""APScheduler setup for background price ingestion.

Uses AsyncIOScheduler with an in-memory job store. The ingestion job is
registered via register_jobs() from the application lifespan.
"""

from datetime import datetime, timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.config import get_settings
from app.services.ingestion_job import PriceIngestionJob
from app.workers.jobs import run_price_ingestion

scheduler = AsyncIOScheduler(
    jobstores={
        "default": MemoryJobStore(),
    },
    job_defaults={
        "coalesce": True,
        "misfire_grace_time": 30,
        "max_instances": 1,
    },
    timezone="UTC",
)


def register_jobs(job: PriceIngestionJob) -> None:
    """Register the price ingestion job on a fixed interval.

    The first run fires immediately so a fresh deploy has prices without
    waiting a full interval.
    """
    interval = get_settings().ingestion_interval_seconds
    scheduler.add_job(
        run_price_ingestion,
        trigger=IntervalTrigger(seconds=interval),
        args=[job],
        id="ingest_prices",
        name="Ingest metal prices",
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info("Registered job: ingest_prices (every {interval}s)", interval=interval)
