"""Trade execution endpoints.

Typed trade errors map to HTTP statuses; the body always carries the
error ``code`` and the failed ``trade_id`` so a client can look it up.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_trade_executor, get_user_id
from app.database import get_session
from app.schemas.trade import (
    TradeDetailResponse,
    TradeErrorResponse,
    TradeRequest,
    TradeResponse,
)
from app.services.trade_executor import (
    InsufficientBalance,
    SnapshotAlreadyUsed,
    SnapshotExpired,
    SnapshotMetalMismatch,
    SnapshotNotFound,
    TradeError,
    TradeExecutor,
    TradeInProgress,
)

router = APIRouter(prefix="/trades", tags=["trades"])

ERROR_STATUS: dict[type[TradeError], int] = {
    SnapshotNotFound: 404,
    SnapshotExpired: 410,
    SnapshotMetalMismatch: 409,
    SnapshotAlreadyUsed: 409,
    InsufficientBalance: 402,
    TradeInProgress: 409,
}


def error_response(exc: TradeError) -> JSONResponse:
    body = TradeErrorResponse(code=exc.code, message=str(exc), trade_id=exc.trade_id)
    return JSONResponse(status_code=ERROR_STATUS.get(type(exc), 400), content=body.model_dump())


@router.post(
    "",
    response_model=TradeResponse,
    responses={code: {"model": TradeErrorResponse} for code in (402, 404, 409, 410)},
)
async def execute_trade(
    body: TradeRequest,
    user_id: str = Depends(get_user_id),
    session: AsyncSession = Depends(get_session),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    """Execute a buy or sell against a snapshot, exactly once per idempotency key."""
    try:
        result = await executor.execute(
            session,
            user_id=user_id,
            direction=body.direction,
            metal=body.metal,
            snapshot_id=body.snapshot_id,
            amount=body.amount,
            idempotency_key=body.idempotency_key,
        )
    except TradeError as exc:
        return error_response(exc)
    except ValueError as exc:
        # amount rounds to zero at the asset precision
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return TradeResponse(
        trade_id=result.trade_id,
        status=result.status,
        direction=result.direction,
        metal=result.metal,
        grams=result.grams,
        amount=result.amount,
        price_per_gram=result.price_per_gram,
        currency=result.currency,
        snapshot_id=result.snapshot_id,
        replayed=result.replayed,
    )


@router.get("/{trade_id}", response_model=TradeDetailResponse)
async def get_trade(
    trade_id: str,
    user_id: str = Depends(get_user_id),
    session: AsyncSession = Depends(get_session),
    executor: TradeExecutor = Depends(get_trade_executor),
) -> TradeDetailResponse:
    trade = await executor.get_trade(session, trade_id)
    # Other users' trades read as missing
    if trade is None or trade.user_id != user_id:
        raise HTTPException(status_code=404, detail="Trade not found")
    return TradeDetailResponse.model_validate(trade)
