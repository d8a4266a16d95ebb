"""Health check endpoint with database connectivity verification."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.schemas.health import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(session: AsyncSession = Depends(get_session)) -> HealthResponse:
    """Check application and database health.

    Always 200 while the process is alive; an unreachable database is
    reported as status "degraded" in the body.
    """
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Health check failed | database error={error}", error=str(exc))
        return HealthResponse(
            status="degraded",
            database="disconnected",
            timestamp=datetime.now(UTC),
        )
    return HealthResponse(status="ok", database="connected", timestamp=datetime.now(UTC))
