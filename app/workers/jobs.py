"""Scheduled job functions for price ingestion.

These run outside the FastAPI request context, so sessions come straight
from async_session_factory. All exceptions are caught to keep the
scheduler alive. FailureTracker counts consecutive failed cycles per metal
and raises an operator alert in the log once a streak reaches its
threshold.
"""

from collections.abc import Sequence

from loguru import logger

from app.config import get_settings
from app.database import async_session_factory
from app.services.failure_tracker import FailureTracker
from app.services.fetcher import HttpFetcher
from app.services.ingestion_job import IngestionResult, PriceIngestionJob
from app.services.normalizer import NormalizationPolicy
from app.services.price_cache import PriceCache
from app.services.price_types import Metal
from app.services.sources import DEFAULT_SOURCES, SourceConfig


def build_ingestion_job(cache: PriceCache) -> PriceIngestionJob:
    """Build the ingestion job that refreshes ``cache``.

    The application keeps exactly one on ``app.state`` so its single-flight
    lock is shared between the scheduler and manual runs.
    """
    settings = get_settings()
    return PriceIngestionJob(
        session_factory=async_session_factory,
        fetcher=HttpFetcher(default_timeout=settings.fetch_timeout_seconds),
        policy=NormalizationPolicy.from_settings(settings),
        cache=cache,
        user_agent=settings.user_agent,
        default_timeout=settings.fetch_timeout_seconds,
    )


def track_outcomes(result: IngestionResult) -> None:
    """Feed per-metal outcomes into the FailureTracker and alert on streaks."""
    for metal, outcome in result.per_metal.items():
        key = f"ingest_{metal.value}"
        if outcome.success:
            FailureTracker.record_success(key)
            continue
        count = FailureTracker.record_failure(key)
        if FailureTracker.should_alert(key):
            logger.critical(
                "ALERT: {metal} ingestion failing | consecutive_failures={count} "
                "sources={sources} error={error}",
                metal=metal.value,
                count=count,
                sources=outcome.attempted_sources,
                error=outcome.error,
            )


async def run_price_ingestion(
    job: PriceIngestionJob,
    sources: Sequence[SourceConfig] = DEFAULT_SOURCES,
) -> IngestionResult | None:
    """Run one ingestion cycle. Registered as an APScheduler job.

    Returns the cycle result, or None if the cycle itself crashed.
    """
    try:
        result = await job.run(sources)
        if not result.skipped:
            track_outcomes(result)
        return result
    except Exception:
        logger.exception("run_price_ingestion failed")
        for metal in Metal:
            FailureTracker.record_failure(f"ingest_{metal.value}")
        return None
