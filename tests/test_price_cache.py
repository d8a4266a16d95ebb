"""Tests for the read-through latest price cache and its staleness flags."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from app.services.price_cache import LatestPriceReader, PriceCache
from app.services.price_store import PriceStore
from app.services.price_types import Metal


class FailingStore(PriceStore):
    async def latest(self, session, metal):
        raise OperationalError("SELECT", {}, Exception("database is down"))


def make_reader(cache, clock, store=None):
    return LatestPriceReader(cache, store=store, clock=clock)


async def test_nothing_recorded_reads_as_none(db_session, price_cache, clock):
    latest = await make_reader(price_cache, clock).get_latest_prices(db_session)

    assert latest.gold is None
    assert latest.silver is None
    assert latest.is_cached is False


async def test_read_through_populates_cache(db_session, price_cache, clock, make_price):
    record = await PriceStore().insert(db_session, make_price(observed_at=clock.now))

    latest = await make_reader(price_cache, clock).get_latest_prices(db_session)

    assert latest.gold.id == record.id
    assert latest.is_cached is False
    assert price_cache.get(Metal.GOLD).record.id == record.id


async def test_fresh_entry_is_served_without_store_read(
    db_session, price_cache, clock, make_price
):
    store = PriceStore()
    first = await store.insert(db_session, make_price(observed_at=clock.now))
    reader = make_reader(price_cache, clock)
    await reader.get_price(db_session, Metal.GOLD)

    await store.insert(db_session, make_price(observed_at=clock.now + timedelta(seconds=30)))
    clock.advance(minutes=1)
    assert (await reader.get_price(db_session, Metal.GOLD)).id == first.id

    clock.advance(minutes=2)
    assert (await reader.get_price(db_session, Metal.GOLD)).id != first.id


async def test_old_observation_is_flagged_cached(db_session, price_cache, clock, make_price):
    await PriceStore().insert(db_session, make_price(observed_at=clock.now))
    clock.advance(minutes=6)

    latest = await make_reader(price_cache, clock).get_latest_prices(db_session)

    assert latest.gold is not None
    assert latest.is_cached is True


async def test_failed_ingestion_flags_price_until_new_record(
    db_session, price_cache, clock, make_price
):
    store = PriceStore()
    reader = make_reader(price_cache, clock)
    await store.insert(db_session, make_price(observed_at=clock.now))
    await reader.get_price(db_session, Metal.GOLD)

    price_cache.mark_stale(Metal.GOLD)
    assert (await reader.get_latest_prices(db_session)).is_cached is True

    # Same record after the fresh window keeps the flag
    clock.advance(minutes=3)
    assert (await reader.get_latest_prices(db_session)).is_cached is True

    await store.insert(db_session, make_price(observed_at=clock.now))
    clock.advance(minutes=3)
    assert (await reader.get_latest_prices(db_session)).is_cached is False


async def test_failure_before_first_read_is_remembered(
    db_session, price_cache, clock, make_price
):
    await PriceStore().insert(db_session, make_price(observed_at=clock.now))
    price_cache.mark_stale(Metal.GOLD)

    latest = await make_reader(price_cache, clock).get_latest_prices(db_session)

    assert latest.gold is not None
    assert latest.is_cached is True


async def test_store_error_falls_back_to_cached_entry(
    db_session, price_cache, clock, make_price
):
    store = PriceStore()
    record = await store.insert(db_session, make_price(observed_at=clock.now))
    silver = await store.insert(
        db_session, make_price(metal=Metal.SILVER, buy="85.5", sell="85.5", observed_at=clock.now)
    )
    price_cache.put(record, fetched_at=clock.now)
    price_cache.put(silver, fetched_at=clock.now)
    clock.advance(minutes=3)

    latest = await make_reader(price_cache, clock, store=FailingStore()).get_latest_prices(
        db_session
    )

    assert latest.gold.id == record.id
    assert latest.silver.id == silver.id
    assert latest.is_cached is True


async def test_store_error_without_cache_propagates(db_session, price_cache, clock):
    reader = make_reader(price_cache, clock, store=FailingStore())

    with pytest.raises(OperationalError):
        await reader.get_price(db_session, Metal.GOLD)


def test_pending_stale_mark_is_consumed_once():
    cache = PriceCache()
    cache.mark_stale(Metal.SILVER)
    assert cache.consume_pending_stale(Metal.SILVER) is True
    assert cache.consume_pending_stale(Metal.SILVER) is False
