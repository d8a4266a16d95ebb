"""Shared async test fixtures for database, HTTP client, and source documents."""

import os

# app.database builds its engine at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./metalvault-test.db")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.models import Base
from app.services.failure_tracker import FailureTracker
from app.services.normalizer import NormalizationPolicy
from app.services.price_cache import PriceCache
from app.services.price_types import Metal, NormalizedPrice

# ---------------------------------------------------------------------------
# Test database URL
# Defaults to a throwaway SQLite file per test; set TEST_DATABASE_URL to run
# the suite against PostgreSQL.
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

T0 = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Mutable clock for services that take a ``clock`` callable."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Database (function-scoped)
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema per test."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'metalvault.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if TEST_DATABASE_URL:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_failure_tracker():
    FailureTracker.reset_all()
    yield
    FailureTracker.reset_all()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def policy():
    return NormalizationPolicy()


@pytest.fixture
def price_cache():
    return PriceCache()


# ---------------------------------------------------------------------------
# FastAPI test client (function-scoped)
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def client(session_factory, price_cache):
    """Async HTTP client with the test database and an isolated price cache."""
    from app.api.deps import get_price_cache
    from app.database import get_session
    from app.main import app

    async def _override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_price_cache] = lambda: price_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Price builders
# ---------------------------------------------------------------------------
@pytest.fixture
def make_price():
    """Build a NormalizedPrice with sensible defaults."""

    def _make(
        metal: Metal = Metal.GOLD,
        buy: str = "6984.82",
        sell: str = "6950.00",
        observed_at: datetime = T0,
        source: str = "test-source",
    ) -> NormalizedPrice:
        return NormalizedPrice(
            metal=metal,
            buy_price_per_gram=Decimal(buy),
            sell_price_per_gram=Decimal(sell),
            currency="EGP",
            source=source,
            observed_at=observed_at,
        )

    return _make


# ---------------------------------------------------------------------------
# Source documents
# ---------------------------------------------------------------------------
GOLD_PAGE = """
<html><body>
  <div class="rate"><span data-u="XAU24K-1-rate">6,984.82</span> EGP</div>
  <table class="gradient-style">
    <tr><th>العيار</th><th>السعر</th></tr>
    <tr><td>24 قيراط</td><td><span class="rate-res">6,984.82</span> EGP</td></tr>
    <tr><td>21 قيراط</td><td><span class="rate-res">6,111.72</span> EGP</td></tr>
  </table>
  <table class="market">
    <tr><td>سعر البيع</td><td>217,221.76 EGP</td></tr>
    <tr><td>سعر الشراء</td><td>217,100.00 EGP</td></tr>
    <tr><td>سعر الفتح</td><td>216,000.00 EGP</td></tr>
    <tr><td>التغير</td><td>1,221.76 EGP</td></tr>
    <tr><td>نسبة التغير</td><td>0.57%</td></tr>
  </table>
</body></html>
"""

SILVER_PAGE = """
<html><body>
  <span data-u="XAG-1-rate">85.50</span>
  <table class="gradient-style">
    <tr><td>جرام</td><td><span class="rate-res">85.50</span></td></tr>
    <tr><td>أونصة</td><td><span class="rate-res">2,659.35</span></td></tr>
  </table>
</body></html>
"""

KARAT_PAGE = """
<html><body>
  <table>
    <tr><th>العيار</th><th>بيع</th><th>شراء</th></tr>
    <tr><td>عيار 24</td><td>6,990.00</td><td>6,960.00</td></tr>
    <tr><td>عيار 21</td><td>6,116.25</td><td>6,090.00</td></tr>
  </table>
</body></html>
"""


@pytest.fixture
def gold_html() -> bytes:
    return GOLD_PAGE.encode("utf-8")


@pytest.fixture
def silver_html() -> bytes:
    return SILVER_PAGE.encode("utf-8")


@pytest.fixture
def karat_html() -> bytes:
    return KARAT_PAGE.encode("utf-8")
