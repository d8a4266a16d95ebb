"""Append-only price time series storage.

Rows are only ever inserted; there is no update or delete path. Each
ingestion event appends one row per metal, tagged with its own
observation time, so repeated ingestion needs no deduplication.
"""

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.metal_price import MetalPrice
from app.services.price_types import Metal, NormalizedPrice, PriceRecord

MAX_HISTORY_LIMIT = 1000


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes returned by backends without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_record(row: MetalPrice) -> PriceRecord:
    return PriceRecord(
        id=row.id,
        price=NormalizedPrice(
            metal=Metal(row.metal),
            buy_price_per_gram=row.buy_price_per_gram,
            sell_price_per_gram=row.sell_price_per_gram,
            currency=row.currency,
            source=row.source,
            observed_at=as_utc(row.observed_at),
            is_derived=row.is_derived,
            opening_price_per_gram=row.opening_price_per_gram,
            change_per_gram=row.change_per_gram,
            change_percent=row.change_percent,
        ),
        created_at=as_utc(row.created_at),
    )


class PriceStore:
    """Reads and appends normalized price records."""

    async def insert(self, session: AsyncSession, price: NormalizedPrice) -> PriceRecord:
        """Append one price record and commit.

        Returns:
            The stored record with its assigned id.
        """
        row = MetalPrice(
            metal=price.metal.value,
            buy_price_per_gram=price.buy_price_per_gram,
            sell_price_per_gram=price.sell_price_per_gram,
            currency=price.currency,
            source=price.source,
            is_derived=price.is_derived,
            opening_price_per_gram=price.opening_price_per_gram,
            change_per_gram=price.change_per_gram,
            change_percent=price.change_percent,
            observed_at=price.observed_at,
            created_at=datetime.now(timezone.utc),
        )
        session.add(row)
        await session.commit()

        logger.info(
            "Stored price | metal={metal} id={id} buy={buy} sell={sell} source={source}",
            metal=price.metal.value,
            id=row.id,
            buy=price.buy_price_per_gram,
            sell=price.sell_price_per_gram,
            source=price.source,
        )
        return PriceRecord(id=row.id, price=price, created_at=as_utc(row.created_at))

    async def latest(self, session: AsyncSession, metal: Metal) -> PriceRecord | None:
        """Return the most recently observed record for a metal, or None."""
        records = await self.history(session, metal, limit=1)
        return records[0] if records else None

    async def history(
        self, session: AsyncSession, metal: Metal, limit: int = 100
    ) -> list[PriceRecord]:
        """Return up to ``limit`` records for a metal, most recent first.

        Raises:
            ValueError: if limit is outside 1..1000.
        """
        if not 1 <= limit <= MAX_HISTORY_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_HISTORY_LIMIT}, got {limit}")

        result = await session.execute(
            select(MetalPrice)
            .where(MetalPrice.metal == metal.value)
            .order_by(MetalPrice.observed_at.desc(), MetalPrice.id.desc())
            .limit(limit)
        )
        return [to_record(row) for row in result.scalars().all()]
