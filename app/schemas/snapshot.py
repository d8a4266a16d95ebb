"""Request/response schemas for price snapshots."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from app.models.price_snapshot import PriceSnapshot
from app.services.price_types import Metal


class SnapshotCreateRequest(BaseModel):
    metal: Metal


class SnapshotResponse(BaseModel):
    snapshot_id: str
    metal: Metal
    buy_price_per_gram: Decimal
    sell_price_per_gram: Decimal
    currency: str
    source_price_record_id: int
    created_at: datetime
    valid_until: datetime

    @classmethod
    def from_row(cls, snapshot: PriceSnapshot) -> "SnapshotResponse":
        return cls(
            snapshot_id=snapshot.id,
            metal=Metal(snapshot.metal),
            buy_price_per_gram=snapshot.buy_price_per_gram,
            sell_price_per_gram=snapshot.sell_price_per_gram,
            currency=snapshot.currency,
            source_price_record_id=snapshot.source_price_record_id,
            created_at=snapshot.created_at,
            valid_until=snapshot.valid_until,
        )
