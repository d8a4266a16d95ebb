"""Latest price, history and market-feed endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_market_service, get_price_reader
from app.database import get_session
from app.schemas.prices import LatestPricesResponse, PriceResponse
from app.services.market_prices import MarketPriceService
from app.services.price_cache import LatestPriceReader
from app.services.price_store import MAX_HISTORY_LIMIT, PriceStore
from app.services.price_types import Metal

router = APIRouter(prefix="/prices", tags=["prices"])


@router.get("/latest", response_model=LatestPricesResponse)
async def get_latest_prices(
    session: AsyncSession = Depends(get_session),
    reader: LatestPriceReader = Depends(get_price_reader),
) -> LatestPricesResponse:
    """Latest gold and silver prices.

    Always 200: a metal that was never priced is null, and stale prices
    are served with ``is_cached`` set.
    """
    latest = await reader.get_latest_prices(session)
    return LatestPricesResponse(
        gold=PriceResponse.from_record(latest.gold),
        silver=PriceResponse.from_record(latest.silver),
        is_cached=latest.is_cached,
    )


@router.get("/market", response_model=LatestPricesResponse)
async def get_market_prices(
    session: AsyncSession = Depends(get_session),
    service: MarketPriceService = Depends(get_market_service),
) -> LatestPricesResponse:
    """Market-feed prices, refreshed from the metals API when stale."""
    prices = await service.get_prices(session)
    return LatestPricesResponse(
        gold=PriceResponse.from_record(prices.gold),
        silver=PriceResponse.from_record(prices.silver),
        is_cached=prices.is_cached,
    )


@router.get("/latest/{metal}", response_model=PriceResponse)
async def get_latest_price(
    metal: Metal,
    session: AsyncSession = Depends(get_session),
    reader: LatestPriceReader = Depends(get_price_reader),
) -> PriceResponse:
    record = await reader.get_price(session, metal)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No price recorded for {metal.value}")
    return PriceResponse.from_record(record)


@router.get("/{metal}/history", response_model=list[PriceResponse])
async def get_price_history(
    metal: Metal,
    limit: int = Query(default=100, ge=1, le=MAX_HISTORY_LIMIT),
    session: AsyncSession = Depends(get_session),
) -> list[PriceResponse]:
    """Stored prices for ``metal``, most recent first."""
    records = await PriceStore().history(session, metal, limit=limit)
    return [PriceResponse.from_record(r) for r in records]
