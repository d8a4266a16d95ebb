"""Read-through cache for the latest price per metal.

``PriceCache`` is an explicit object (held on ``app.state``, handed to the
ingestion job and the readers) instead of process-wide variables, so
independent workers and test instances never share hidden state.

Freshness policy:
    - an entry younger than ``fresh_after`` is served straight from cache;
    - older entries are re-read from the price store (read-through);
    - a price is flagged as cached/stale when its last ingestion failed or
      its observation is older than ``stale_after``.
Staleness never fails a read; only a metal that was never priced reads
as None.
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.price_store import PriceStore
from app.services.price_types import Metal, PriceRecord


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    record: PriceRecord
    fetched_at: datetime
    stale: bool = False


@dataclass
class LatestPrices:
    gold: PriceRecord | None
    silver: PriceRecord | None
    is_cached: bool


class PriceCache:
    """Per-metal (record, fetched_at, stale) holder."""

    def __init__(self) -> None:
        self._entries: dict[Metal, CacheEntry] = {}
        # Metals whose ingestion failed before any price was cached
        self._pending_stale: set[Metal] = set()

    def get(self, metal: Metal) -> CacheEntry | None:
        return self._entries.get(metal)

    def put(self, record: PriceRecord, fetched_at: datetime, stale: bool = False) -> CacheEntry:
        entry = CacheEntry(record=record, fetched_at=fetched_at, stale=stale)
        self._entries[record.metal] = entry
        if not stale:
            self._pending_stale.discard(record.metal)
        return entry

    def mark_stale(self, metal: Metal) -> None:
        """Flag a metal's cached price as left over from a failed ingestion cycle."""
        entry = self._entries.get(metal)
        if entry is not None:
            self._entries[metal] = replace(entry, stale=True)
        else:
            self._pending_stale.add(metal)

    def consume_pending_stale(self, metal: Metal) -> bool:
        if metal in self._pending_stale:
            self._pending_stale.discard(metal)
            return True
        return False


class LatestPriceReader:
    """Serves the latest price per metal through a PriceCache.

    Args:
        cache: Shared cache instance.
        store: Price store used on cache misses and expired entries.
        fresh_after: Age under which cached entries are served as-is.
        stale_after: Observation age beyond which a price is flagged cached.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        cache: PriceCache,
        store: PriceStore | None = None,
        fresh_after: timedelta = timedelta(minutes=2),
        stale_after: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cache = cache
        self.store = store or PriceStore()
        self.fresh_after = fresh_after
        self.stale_after = stale_after
        self.clock = clock

    async def _entry(self, session: AsyncSession, metal: Metal) -> CacheEntry | None:
        now = self.clock()
        entry = self.cache.get(metal)
        if entry is not None and now - entry.fetched_at <= self.fresh_after:
            return entry

        try:
            record = await self.store.latest(session, metal)
        except SQLAlchemyError:
            if entry is None:
                raise
            logger.exception(
                "Price store read failed, serving cached price | metal={metal}",
                metal=metal.value,
            )
            return replace(entry, stale=True)

        if record is None:
            return None

        if entry is not None and entry.record.id == record.id:
            stale = entry.stale
        else:
            stale = self.cache.consume_pending_stale(metal)
        return self.cache.put(record, fetched_at=now, stale=stale)

    def _is_cached(self, entry: CacheEntry) -> bool:
        age = self.clock() - entry.record.price.observed_at
        return entry.stale or age > self.stale_after

    async def get_price(self, session: AsyncSession, metal: Metal) -> PriceRecord | None:
        """Return the latest record for one metal, or None if never priced."""
        entry = await self._entry(session, metal)
        return entry.record if entry else None

    async def get_latest_prices(self, session: AsyncSession) -> LatestPrices:
        """Return the latest gold and silver prices with the cached flag."""
        entries = {metal: await self._entry(session, metal) for metal in Metal}
        is_cached = any(self._is_cached(e) for e in entries.values() if e is not None)
        if is_cached:
            logger.info(
                "Serving cached prices | stale={stale}",
                stale=[m.value for m, e in entries.items() if e and self._is_cached(e)],
            )
        return LatestPrices(
            gold=entries[Metal.GOLD].record if entries[Metal.GOLD] else None,
            silver=entries[Metal.SILVER].record if entries[Metal.SILVER] else None,
            is_cached=is_cached,
        )
