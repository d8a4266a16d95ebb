"""Request/response schemas for trades."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.price_types import Direction, Metal, TradeStatus


class TradeRequest(BaseModel):
    """Buy: ``amount`` is currency to spend. Sell: ``amount`` is grams to sell."""

    direction: Direction
    metal: Metal
    snapshot_id: str = Field(min_length=1, max_length=36)
    amount: Decimal = Field(gt=0)
    idempotency_key: str = Field(min_length=1, max_length=128)


class TradeResponse(BaseModel):
    trade_id: str
    status: TradeStatus
    direction: Direction
    metal: Metal
    grams: Decimal
    amount: Decimal
    price_per_gram: Decimal
    currency: str
    snapshot_id: str
    replayed: bool = False


class TradeDetailResponse(BaseModel):
    """Stored trade row, including failed ones."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    idempotency_key: str
    metal: Metal
    direction: Direction
    requested_amount: Decimal
    snapshot_id: str
    status: TradeStatus
    amount_currency: Optional[Decimal] = None
    amount_grams: Optional[Decimal] = None
    price_per_gram: Optional[Decimal] = None
    currency: Optional[str] = None
    error_code: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class TradeErrorResponse(BaseModel):
    code: str
    message: str
    trade_id: Optional[str] = None
