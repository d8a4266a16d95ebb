"""Per-user asset balances backing the default ledger."""

from decimal import Decimal

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, BigIntPK, ExactDecimal


class Balance(Base):
    __tablename__ = "balances"

    __table_args__ = (
        UniqueConstraint("user_id", "asset", name="uq_balance_identity"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    asset: Mapped[str] = mapped_column(String(10))  # currency code, "gold" or "silver"
    amount: Mapped[Decimal] = mapped_column(ExactDecimal(20, 6), default=Decimal("0"))
