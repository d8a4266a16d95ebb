"""Append-only metal price time series model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, BigIntPK, ExactDecimal


class MetalPrice(Base):
    __tablename__ = "metal_prices"

    __table_args__ = (
        Index("idx_metal_prices_latest", "metal", "observed_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    metal: Mapped[str] = mapped_column(String(10))
    buy_price_per_gram: Mapped[Decimal] = mapped_column(ExactDecimal(18, 6))
    sell_price_per_gram: Mapped[Decimal] = mapped_column(ExactDecimal(18, 6))
    currency: Mapped[str] = mapped_column(String(3))
    source: Mapped[str] = mapped_column(String(100))
    is_derived: Mapped[bool] = mapped_column(Boolean, default=False)
    opening_price_per_gram: Mapped[Optional[Decimal]] = mapped_column(
        ExactDecimal(18, 6), nullable=True
    )
    change_per_gram: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(18, 6), nullable=True)
    change_percent: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(10, 4), nullable=True)
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
