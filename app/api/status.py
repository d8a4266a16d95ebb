"""Detailed /status diagnostic endpoint for operational visibility."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.models.metal_price import MetalPrice
from app.schemas.status import SchedulerJobInfo, StatusResponse
from app.services.failure_tracker import FailureTracker
from app.services.price_store import as_utc
from app.services.price_types import Metal
from app.workers.scheduler import scheduler

router = APIRouter(tags=["status"])

# Track application start time for uptime calculation
_start_time: datetime = datetime.now(UTC)


@router.get("/status", response_model=StatusResponse)
async def status(session: AsyncSession = Depends(get_session)) -> StatusResponse:
    """Return operational diagnostics.

    Reports database connectivity, scheduler jobs, the last observation
    time per metal and the current consecutive ingestion failure streaks.
    """
    now = datetime.now(UTC)

    db_status = "connected"
    last_observed: dict[str, datetime | None] = {metal.value: None for metal in Metal}
    try:
        await session.execute(text("SELECT 1"))
        result = await session.execute(
            select(MetalPrice.metal, func.max(MetalPrice.observed_at)).group_by(MetalPrice.metal)
        )
        for metal, observed_at in result.all():
            last_observed[metal] = as_utc(observed_at) if observed_at else None
    except SQLAlchemyError as exc:
        logger.error("Status check | database error={error}", error=str(exc))
        db_status = "disconnected"

    scheduler_status = "running" if scheduler.running else "stopped"
    jobs = [
        SchedulerJobInfo(
            id=job.id,
            name=job.name,
            next_run_time=job.next_run_time,
            trigger=str(job.trigger),
        )
        for job in scheduler.get_jobs()
    ]

    overall_status = (
        "ok" if db_status == "connected" and scheduler_status == "running" else "degraded"
    )

    return StatusResponse(
        status=overall_status,
        uptime_seconds=round((now - _start_time).total_seconds(), 1),
        database=db_status,
        scheduler=scheduler_status,
        jobs=jobs,
        last_observed=last_observed,
        ingestion_failures={
            metal.value: FailureTracker.get_count(f"ingest_{metal.value}") for metal in Metal
        },
        timestamp=now,
    )
