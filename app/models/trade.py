"""Buy/sell trade model with caller-supplied idempotency key."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, ExactDecimal


class Trade(Base):
    __tablename__ = "trades"

    __table_args__ = (
        # Sole concurrency guard for trade execution
        UniqueConstraint("user_id", "idempotency_key", name="uq_trade_idempotency"),
        Index("idx_trades_user", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    idempotency_key: Mapped[str] = mapped_column(String(128))
    metal: Mapped[str] = mapped_column(String(10))
    direction: Mapped[str] = mapped_column(String(4))  # "buy" or "sell"
    requested_amount: Mapped[Decimal] = mapped_column(ExactDecimal(20, 6))
    snapshot_id: Mapped[str] = mapped_column(String(36))
    amount_currency: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(20, 6), nullable=True)
    amount_grams: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(20, 6), nullable=True)
    price_per_gram: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(18, 6), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    status: Mapped[str] = mapped_column(String(10), default="pending")
    error_code: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
