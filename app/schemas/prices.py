"""Pydantic response schemas for stored metal prices."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.services.price_types import Metal, PriceRecord


class PriceResponse(BaseModel):
    """One stored price record, per gram in the deployment currency."""

    id: int
    metal: Metal
    buy_price_per_gram: Decimal
    sell_price_per_gram: Decimal
    currency: str
    source: str
    is_derived: bool
    observed_at: datetime
    created_at: datetime
    opening_price_per_gram: Decimal | None = None
    change_per_gram: Decimal | None = None
    change_percent: Decimal | None = None

    @classmethod
    def from_record(cls, record: PriceRecord | None) -> "PriceResponse | None":
        if record is None:
            return None
        price = record.price
        return cls(
            id=record.id,
            metal=price.metal,
            buy_price_per_gram=price.buy_price_per_gram,
            sell_price_per_gram=price.sell_price_per_gram,
            currency=price.currency,
            source=price.source,
            is_derived=price.is_derived,
            observed_at=price.observed_at,
            created_at=record.created_at,
            opening_price_per_gram=price.opening_price_per_gram,
            change_per_gram=price.change_per_gram,
            change_percent=price.change_percent,
        )


class LatestPricesResponse(BaseModel):
    """Latest gold and silver prices; a metal never priced is null."""

    gold: PriceResponse | None = None
    silver: PriceResponse | None = None
    is_cached: bool
