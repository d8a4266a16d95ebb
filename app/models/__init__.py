"""ORM models package -- import all models so Alembic autogenerate discovers them."""

from app.models.base import Base
from app.models.balance import Balance
from app.models.metal_price import MetalPrice
from app.models.price_snapshot import PriceSnapshot
from app.models.trade import Trade

__all__ = [
    "Base",
    "Balance",
    "MetalPrice",
    "PriceSnapshot",
    "Trade",
]
