"""Short-lived price quote model.

Prices and validity are immutable. ``used_by_trade_id`` is set once, by the
trade that consumes the quote.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, ExactDecimal


class PriceSnapshot(Base):
    __tablename__ = "price_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    metal: Mapped[str] = mapped_column(String(10))
    buy_price_per_gram: Mapped[Decimal] = mapped_column(ExactDecimal(18, 6))
    sell_price_per_gram: Mapped[Decimal] = mapped_column(ExactDecimal(18, 6))
    currency: Mapped[str] = mapped_column(String(3))
    source_price_record_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("metal_prices.id")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    used_by_trade_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
