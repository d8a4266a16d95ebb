"""Pricing domain types shared by the extraction, normalization and trade layers."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

# Troy ounce in grams
GRAMS_PER_OUNCE = Decimal("31.1035")

# Stored per-gram precision
PRICE_QUANTUM = Decimal("0.000001")


class Metal(str, Enum):
    """Tracked precious metals."""

    GOLD = "gold"
    SILVER = "silver"


class Unit(str, Enum):
    """Unit an observed value is quoted in."""

    OUNCE = "ounce"
    GRAM = "gram"
    UNKNOWN = "unknown"


class Role(str, Enum):
    """Semantic role of an observed value.

    UNKNOWN marks a plain "price of the metal" figure whose side (buy or
    sell) the source does not state, such as the 24K row of a rate table.
    """

    BUY = "buy"
    SELL = "sell"
    OPENING = "opening"
    CHANGE = "change"
    CHANGE_PERCENT = "change_percent"
    UNKNOWN = "unknown"


class Direction(str, Enum):
    """Trade direction from the user's point of view."""

    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RawObservation:
    """A single unparsed value lifted from a source document."""

    metal: Metal
    label: str
    raw_text: str
    unit: Unit = Unit.UNKNOWN
    role: Role = Role.UNKNOWN


@dataclass(frozen=True)
class NormalizedPrice:
    """Canonical per-gram buy/sell price in the deployment currency."""

    metal: Metal
    buy_price_per_gram: Decimal
    sell_price_per_gram: Decimal
    currency: str
    source: str
    observed_at: datetime
    is_derived: bool = False
    opening_price_per_gram: Decimal | None = None
    change_per_gram: Decimal | None = None
    change_percent: Decimal | None = None


@dataclass(frozen=True)
class PriceRecord:
    """A stored NormalizedPrice with its immutable row identity."""

    id: int
    price: NormalizedPrice
    created_at: datetime

    @property
    def metal(self) -> Metal:
        return self.price.metal
