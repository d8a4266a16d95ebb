"""Price ingestion orchestration: fetch -> extract -> normalize -> store.

Every tracked metal is processed independently and concurrently, each in
its own database session, so a failure for one metal (network error,
malformed page, rejected price, even a failed write) never blocks the
other. Sources configured for the same metal act as fallbacks in
declaration order.
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.extractor import MalformedDocument, extract
from app.services.fetcher import DocumentFetcher
from app.services.normalizer import NormalizationPolicy, normalize
from app.services.price_cache import PriceCache
from app.services.price_store import PriceStore
from app.services.price_types import Metal, PriceRecord
from app.services.sources import SourceConfig, browser_headers


class NormalizationRejected(ValueError):
    """Raised when a source's observations do not produce a valid price."""


@dataclass
class MetalOutcome:
    """Result of one metal's ingestion within a cycle."""

    metal: Metal
    success: bool
    source: str | None = None
    record_id: int | None = None
    error: str | None = None
    attempted_sources: list[str] = field(default_factory=list)


@dataclass
class IngestionResult:
    """Per-metal summary of an ingestion cycle."""

    per_metal: dict[Metal, MetalOutcome]
    started_at: datetime
    finished_at: datetime
    skipped: bool = False

    @property
    def first_error(self) -> str | None:
        for outcome in self.per_metal.values():
            if outcome.error:
                return outcome.error
        return None

    @property
    def status_code(self) -> int:
        """HTTP-style status for monitoring.

        200 when every metal succeeded, 207 on partial success, 502 when
        nothing was stored, 409 when the cycle was skipped because another
        run was in flight.
        """
        if self.skipped:
            return 409
        successes = sum(1 for o in self.per_metal.values() if o.success)
        if successes == len(self.per_metal):
            return 200
        if successes:
            return 207
        return 502


def _describe(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"[:300]


class PriceIngestionJob:
    """Runs one ingestion cycle over a set of configured sources.

    Args:
        session_factory: Opens one session per metal.
        fetcher: Transport capability returning document bytes.
        policy: Normalization policy (units, currency).
        cache: Shared price cache primed on success, marked stale on failure.
        store: Price store (defaults to a new PriceStore).
        user_agent: Browser-like user agent sent to scraped sources.
        default_timeout: Per-source fetch timeout when a source sets none.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: DocumentFetcher,
        policy: NormalizationPolicy,
        cache: PriceCache | None = None,
        store: PriceStore | None = None,
        user_agent: str = "Mozilla/5.0",
        default_timeout: float = 15.0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.policy = policy
        self.cache = cache
        self.store = store or PriceStore()
        self.user_agent = user_agent
        self.default_timeout = default_timeout
        self.clock = clock
        self._lock = asyncio.Lock()

    async def run(self, sources: Sequence[SourceConfig]) -> IngestionResult:
        """Ingest every metal that has at least one configured source.

        Never raises for source or storage failures; those are recorded in
        the per-metal outcome. A call made while another run is still in
        progress is skipped.
        """
        started_at = self.clock()
        if self._lock.locked():
            logger.warning("Ingestion already running, skipping this cycle")
            return IngestionResult(
                per_metal={}, started_at=started_at, finished_at=self.clock(), skipped=True
            )

        async with self._lock:
            by_metal: dict[Metal, list[SourceConfig]] = {}
            for source in sources:
                by_metal.setdefault(source.metal, []).append(source)

            outcomes = await asyncio.gather(
                *(self._ingest_metal(metal, metal_sources) for metal, metal_sources in by_metal.items())
            )

        result = IngestionResult(
            per_metal={o.metal: o for o in outcomes},
            started_at=started_at,
            finished_at=self.clock(),
        )
        logger.info(
            "Ingestion cycle complete | status={status} outcomes={outcomes}",
            status=result.status_code,
            outcomes={m.value: ("ok" if o.success else o.error) for m, o in result.per_metal.items()},
        )
        return result

    async def _ingest_metal(self, metal: Metal, sources: list[SourceConfig]) -> MetalOutcome:
        outcome = MetalOutcome(metal=metal, success=False)

        for source in sources:
            outcome.attempted_sources.append(source.name)
            try:
                record = await self._ingest_source(source)
            except (httpx.HTTPError, MalformedDocument, NormalizationRejected, SQLAlchemyError) as exc:
                logger.warning(
                    "Source failed | metal={metal} source={source} error={error}",
                    metal=metal.value,
                    source=source.name,
                    error=_describe(exc),
                )
                if outcome.error is None:
                    outcome.error = f"{source.name}: {_describe(exc)}"
                continue
            except Exception as exc:
                # Keep the other metal's pipeline alive
                logger.exception(
                    "Unexpected ingestion error | metal={metal} source={source}",
                    metal=metal.value,
                    source=source.name,
                )
                if outcome.error is None:
                    outcome.error = f"{source.name}: {_describe(exc)}"
                continue

            outcome.success = True
            outcome.source = source.name
            outcome.record_id = record.id
            if self.cache is not None:
                self.cache.put(record, fetched_at=self.clock())
            return outcome

        logger.error(
            "All sources failed | metal={metal} sources={sources}",
            metal=metal.value,
            sources=outcome.attempted_sources,
        )
        if self.cache is not None:
            self.cache.mark_stale(metal)
        return outcome

    async def _ingest_source(self, source: SourceConfig) -> PriceRecord:
        headers = {**browser_headers(self.user_agent), **source.headers}
        document = await self.fetcher.fetch(
            source.url, headers, source.timeout_seconds or self.default_timeout
        )
        observations = extract(document, source)
        price = normalize(
            observations,
            self.policy,
            source=source.name,
            metal=source.metal,
            observed_at=self.clock(),
        )
        if price is None:
            raise NormalizationRejected(f"no valid price in {len(observations)} observations")

        async with self.session_factory() as session:
            return await self.store.insert(session, price)
