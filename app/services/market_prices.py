"""Automated market-feed pricing with a freshness trigger.

Before calling the paid metals API, the latest stored record per metal is
checked; the API is only queried when a price is missing or older than
the refresh threshold. An unconfigured or failing API falls back silently
to the stored prices, and the response is flagged as cache-derived.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import httpx
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.extractor import MalformedDocument, extract, parse_number
from app.services.fetcher import DocumentFetcher
from app.services.normalizer import NormalizationPolicy, derive_from_rate
from app.services.price_store import PriceStore
from app.services.price_types import Metal, PriceRecord
from app.services.sources import METALS_API, SourceConfig

METAL_SYMBOLS = {Metal.GOLD: "XAU", Metal.SILVER: "XAG"}


@dataclass
class MarketPrices:
    gold: PriceRecord | None
    silver: PriceRecord | None
    is_cached: bool


class MarketPriceService:
    """Serves market-feed prices, refreshing from the metals API when stale.

    Args:
        fetcher: Transport capability.
        policy: Normalization policy (currency and spread factor).
        api_key: Metals API access key; empty disables fetching.
        api_url: Metals API "latest" endpoint.
        refresh_after: Age after which a stored price triggers a refetch.
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        policy: NormalizationPolicy,
        api_key: str = "",
        api_url: str = METALS_API.url,
        refresh_after: timedelta = timedelta(hours=1),
        store: PriceStore | None = None,
        source: SourceConfig = METALS_API,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.fetcher = fetcher
        self.policy = policy
        self.api_key = api_key
        self.api_url = api_url
        self.refresh_after = refresh_after
        self.store = store or PriceStore()
        self.source = source
        self.clock = clock

    def _needs_refresh(self, latest: dict[Metal, PriceRecord | None]) -> bool:
        now = self.clock()
        return any(
            record is None or now - record.price.observed_at > self.refresh_after
            for record in latest.values()
        )

    async def get_prices(self, session: AsyncSession) -> MarketPrices:
        latest = {metal: await self.store.latest(session, metal) for metal in Metal}

        if not self._needs_refresh(latest):
            return MarketPrices(latest[Metal.GOLD], latest[Metal.SILVER], is_cached=True)

        if not self.api_key:
            logger.warning("Metals API key not configured, serving stored prices")
            return MarketPrices(latest[Metal.GOLD], latest[Metal.SILVER], is_cached=True)

        try:
            fresh = await self._fetch_and_store(session)
        except (httpx.HTTPError, MalformedDocument) as exc:
            logger.error(
                "Metals API fetch failed, serving stored prices | error={error}",
                error=f"{type(exc).__name__}: {exc}",
            )
            return MarketPrices(latest[Metal.GOLD], latest[Metal.SILVER], is_cached=True)

        if not fresh:
            return MarketPrices(latest[Metal.GOLD], latest[Metal.SILVER], is_cached=True)

        merged = {metal: fresh.get(metal) or latest[metal] for metal in Metal}
        return MarketPrices(
            merged[Metal.GOLD],
            merged[Metal.SILVER],
            # Any metal left on its stored price is still cache-derived
            is_cached=len(fresh) < len(Metal),
        )

    async def _fetch_and_store(self, session: AsyncSession) -> dict[Metal, PriceRecord]:
        url = httpx.URL(
            self.api_url,
            params={
                "access_key": self.api_key,
                "base": self.policy.currency,
                "symbols": ",".join(METAL_SYMBOLS.values()),
            },
        )
        document = await self.fetcher.fetch(str(url), {"Accept": "application/json"})
        observations = extract(document, self.source)

        stored: dict[Metal, PriceRecord] = {}
        for metal in Metal:
            obs = next((o for o in observations if o.metal == metal), None)
            if obs is None:
                logger.warning("Metals API returned no rate | metal={metal}", metal=metal.value)
                continue
            rate = parse_number(obs.raw_text)
            if rate is None:
                continue
            price = derive_from_rate(
                metal,
                rate,
                self.policy,
                source=self.source.name,
                unit=obs.unit,
                observed_at=self.clock(),
            )
            if price is None:
                continue
            stored[metal] = await self.store.insert(session, price)

        logger.info(
            "Metals API prices stored | metals={metals}",
            metals=[m.value for m in stored],
        )
        return stored
