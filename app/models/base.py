"""Shared declarative base and column types for all ORM models."""

from decimal import ROUND_HALF_EVEN, Decimal

from sqlalchemy import BigInteger, Integer, Numeric
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class ExactDecimal(TypeDecorator):
    """Fixed-scale decimal column.

    NUMERIC(precision, scale) on PostgreSQL. SQLite has no decimal storage
    class, so there the value is kept as an integer count of 10**-scale
    units; round trips, comparisons and in-SQL arithmetic stay exact on
    both backends. Bound values are quantized to ``scale`` (ROUND_HALF_EVEN).
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int, scale: int) -> None:
        super().__init__(precision, scale)
        self._quantum = Decimal(1).scaleb(-scale)

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(BigInteger())
        return dialect.type_descriptor(Numeric(self.impl.precision, self.impl.scale))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value).quantize(self._quantum, rounding=ROUND_HALF_EVEN)
        if dialect.name == "sqlite":
            return int(value.scaleb(self.impl.scale))
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return Decimal(value).scaleb(-self.impl.scale)
        return Decimal(value)


class Base(DeclarativeBase):
    pass
