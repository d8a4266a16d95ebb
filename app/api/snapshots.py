"""Price snapshot endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_snapshot_service
from app.database import get_session
from app.schemas.snapshot import SnapshotCreateRequest, SnapshotResponse
from app.services.snapshot_service import PriceUnavailable, SnapshotService

router = APIRouter(prefix="/snapshots", tags=["snapshots"])


@router.post("", response_model=SnapshotResponse, status_code=201)
async def create_snapshot(
    body: SnapshotCreateRequest,
    session: AsyncSession = Depends(get_session),
    service: SnapshotService = Depends(get_snapshot_service),
) -> SnapshotResponse:
    """Mint a short-lived quote for ``metal`` that a trade can be executed against."""
    try:
        snapshot = await service.create_snapshot(session, body.metal)
    except PriceUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return SnapshotResponse.from_row(snapshot)


@router.get("/{snapshot_id}", response_model=SnapshotResponse)
async def get_snapshot(
    snapshot_id: str,
    session: AsyncSession = Depends(get_session),
    service: SnapshotService = Depends(get_snapshot_service),
) -> SnapshotResponse:
    snapshot = await service.get_snapshot(session, snapshot_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return SnapshotResponse.from_row(snapshot)
