"""Short-lived price quotes used to authorize trades.

A snapshot copies the current buy/sell price of a metal verbatim and
stamps an expiry. Snapshots are never recomputed or refreshed: an expired
one is simply rejected when a trade tries to use it.
"""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.price_snapshot import PriceSnapshot
from app.services.price_cache import LatestPriceReader
from app.services.price_types import Metal

DEFAULT_TTL = timedelta(minutes=5)


class PriceUnavailable(LookupError):
    """Raised when no price has ever been recorded for the requested metal."""

    def __init__(self, metal: Metal) -> None:
        super().__init__(f"No price available for {metal.value}")
        self.metal = metal


class SnapshotService:
    def __init__(
        self,
        reader: LatestPriceReader,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.reader = reader
        self.ttl = ttl
        self.clock = clock

    async def create_snapshot(self, session: AsyncSession, metal: Metal) -> PriceSnapshot:
        """Mint a snapshot of the latest price for ``metal``.

        Raises:
            PriceUnavailable: if the metal has never been priced.
        """
        record = await self.reader.get_price(session, metal)
        if record is None:
            raise PriceUnavailable(metal)

        now = self.clock()
        snapshot = PriceSnapshot(
            id=str(uuid.uuid4()),
            metal=metal.value,
            buy_price_per_gram=record.price.buy_price_per_gram,
            sell_price_per_gram=record.price.sell_price_per_gram,
            currency=record.price.currency,
            source_price_record_id=record.id,
            created_at=now,
            valid_until=now + self.ttl,
        )
        session.add(snapshot)
        await session.commit()

        logger.info(
            "Snapshot created | id={id} metal={metal} buy={buy} sell={sell} valid_until={valid_until}",
            id=snapshot.id,
            metal=metal.value,
            buy=snapshot.buy_price_per_gram,
            sell=snapshot.sell_price_per_gram,
            valid_until=snapshot.valid_until.isoformat(),
        )
        return snapshot

    async def get_snapshot(self, session: AsyncSession, snapshot_id: str) -> PriceSnapshot | None:
        return await session.get(PriceSnapshot, snapshot_id)
