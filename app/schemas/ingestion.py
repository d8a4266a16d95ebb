"""Response schemas for manual ingestion runs."""

from datetime import datetime

from pydantic import BaseModel

from app.services.ingestion_job import IngestionResult


class MetalOutcomeResponse(BaseModel):
    success: bool
    source: str | None = None
    record_id: int | None = None
    error: str | None = None
    attempted_sources: list[str] = []


class IngestionRunResponse(BaseModel):
    status_code: int
    skipped: bool
    started_at: datetime
    finished_at: datetime
    first_error: str | None = None
    per_metal: dict[str, MetalOutcomeResponse]

    @classmethod
    def from_result(cls, result: IngestionResult) -> "IngestionRunResponse":
        return cls(
            status_code=result.status_code,
            skipped=result.skipped,
            started_at=result.started_at,
            finished_at=result.finished_at,
            first_error=result.first_error,
            per_metal={
                metal.value: MetalOutcomeResponse(
                    success=o.success,
                    source=o.source,
                    record_id=o.record_id,
                    error=o.error,
                    attempted_sources=o.attempted_sources,
                )
                for metal, o in result.per_metal.items()
            },
        )
