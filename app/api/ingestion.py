"""Manual ingestion trigger for operators."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.deps import get_job
from app.schemas.ingestion import IngestionRunResponse
from app.services.ingestion_job import PriceIngestionJob
from app.services.sources import DEFAULT_SOURCES
from app.workers.jobs import track_outcomes

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


@router.post("/run", response_model=IngestionRunResponse)
async def run_ingestion(job: PriceIngestionJob = Depends(get_job)) -> JSONResponse:
    """Run one ingestion cycle now.

    The HTTP status mirrors the cycle: 200 all metals stored, 207 partial,
    502 none, 409 when a cycle is already running.
    """
    result = await job.run(DEFAULT_SOURCES)
    if not result.skipped:
        track_outcomes(result)
    body = IngestionRunResponse.from_result(result)
    return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))
