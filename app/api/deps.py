"""Shared FastAPI dependencies for the price and trading routers."""

from datetime import timedelta

from fastapi import Depends, Header, Request

from app.config import get_settings
from app.services.fetcher import HttpFetcher
from app.services.ingestion_job import PriceIngestionJob
from app.services.market_prices import MarketPriceService
from app.services.normalizer import NormalizationPolicy
from app.services.price_cache import LatestPriceReader, PriceCache
from app.services.snapshot_service import SnapshotService
from app.services.trade_executor import TradeExecutor


def get_price_cache(request: Request) -> PriceCache:
    return request.app.state.price_cache


def get_price_reader(cache: PriceCache = Depends(get_price_cache)) -> LatestPriceReader:
    settings = get_settings()
    return LatestPriceReader(
        cache,
        fresh_after=timedelta(seconds=settings.price_fresh_seconds),
        stale_after=timedelta(seconds=settings.price_stale_seconds),
    )


def get_snapshot_service(
    reader: LatestPriceReader = Depends(get_price_reader),
) -> SnapshotService:
    return SnapshotService(reader, ttl=timedelta(seconds=get_settings().snapshot_ttl_seconds))


def get_trade_executor() -> TradeExecutor:
    return TradeExecutor(currency=get_settings().currency)


def get_market_service() -> MarketPriceService:
    settings = get_settings()
    return MarketPriceService(
        fetcher=HttpFetcher(default_timeout=settings.fetch_timeout_seconds),
        policy=NormalizationPolicy.from_settings(settings),
        api_key=settings.metals_api_key,
        api_url=settings.metals_api_url,
        refresh_after=timedelta(seconds=settings.market_refresh_seconds),
    )


def get_job(request: Request) -> PriceIngestionJob:
    return request.app.state.ingestion_job


def get_user_id(x_user_id: str = Header(..., min_length=1, max_length=64)) -> str:
    """Caller identity from the X-User-Id header (not authenticated)."""
    return x_user_id
