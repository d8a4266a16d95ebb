"""Normalization of raw observations into canonical per-gram prices.

Sources mix units (per-ounce and per-gram figures, sometimes in the same
document) and do not always publish both sides of the market. The
normalizer converts every field independently to a per-gram Decimal,
resolves the buy/sell pair, and rejects records that are not usable.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal

from loguru import logger

from app.config import Settings
from app.services.extractor import parse_number
from app.services.price_types import (
    GRAMS_PER_OUNCE,
    PRICE_QUANTUM,
    Metal,
    NormalizedPrice,
    RawObservation,
    Role,
    Unit,
)


@dataclass(frozen=True)
class NormalizationPolicy:
    """Unit and spread rules applied by the normalizer.

    Attributes:
        currency: ISO code every normalized price is expressed in.
        ounce_threshold: Values of unknown unit above this are per-ounce prices.
        change_ounce_threshold: Same heuristic for the daily change field,
            which runs at a much smaller magnitude than the price itself.
        borderline_ratio: Values within this fraction of a threshold are
            logged, since the magnitude heuristic is ambiguous there.
        spread_factor: Multiplier deriving a sell price from a single rate.
    """

    currency: str = "EGP"
    ounce_threshold: Decimal = Decimal("10000")
    change_ounce_threshold: Decimal = Decimal("500")
    borderline_ratio: Decimal = Decimal("0.10")
    spread_factor: Decimal = Decimal("0.98")

    @classmethod
    def from_settings(cls, settings: Settings) -> "NormalizationPolicy":
        return cls(
            currency=settings.currency,
            ounce_threshold=settings.ounce_threshold,
            change_ounce_threshold=settings.change_ounce_threshold,
            borderline_ratio=settings.borderline_ratio,
            spread_factor=settings.market_spread_factor,
        )


def quantize_price(value: Decimal) -> Decimal:
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)


def to_gram_price(
    value: Decimal,
    unit: Unit,
    threshold: Decimal,
    borderline_ratio: Decimal = Decimal("0"),
) -> Decimal:
    """Convert a single observed value to a per-gram figure.

    Explicit units are trusted. For UNKNOWN units the magnitude decides:
    anything above ``threshold`` is treated as a per-ounce price and
    divided by 31.1035, anything else is already per gram.
    """
    if unit == Unit.OUNCE:
        return value / GRAMS_PER_OUNCE
    if unit == Unit.GRAM:
        return value

    magnitude = abs(value)
    if borderline_ratio and abs(magnitude - threshold) <= threshold * borderline_ratio:
        logger.warning(
            "Borderline unit heuristic | value={value} threshold={threshold}",
            value=value,
            threshold=threshold,
        )
    if magnitude > threshold:
        return value / GRAMS_PER_OUNCE
    return value


def _first(observations: list[RawObservation], role: Role) -> RawObservation | None:
    for obs in observations:
        if obs.role == role:
            return obs
    return None


def _reference(observations: list[RawObservation]) -> RawObservation | None:
    """Pick the undifferentiated price, preferring one quoted per gram."""
    references = [o for o in observations if o.role == Role.UNKNOWN]
    for obs in references:
        if obs.unit == Unit.GRAM:
            return obs
    return references[0] if references else None


def _is_valid(value: Decimal | None) -> bool:
    return value is not None and value.is_finite() and value > 0


def normalize(
    observations: list[RawObservation],
    policy: NormalizationPolicy,
    *,
    source: str,
    metal: Metal | None = None,
    observed_at: datetime | None = None,
) -> NormalizedPrice | None:
    """Build a NormalizedPrice from a document's observations.

    The first explicit SELL and BUY observations win; a missing side falls
    back to the undifferentiated reference price, and if only one side
    exists at all it is copied to the other. Returns None (not available)
    when no valid positive buy and sell can be produced.

    Args:
        observations: Extractor output, in priority order.
        policy: Unit thresholds and currency.
        source: Identifier of the originating source.
        metal: Restrict to observations of this metal (defaults to the
            metal of the first observation).
        observed_at: Observation time (defaults to now, UTC).
    """
    if metal is None and observations:
        metal = observations[0].metal
    observations = [o for o in observations if o.metal == metal]
    if not observations:
        logger.warning("No observations to normalize | source={source}", source=source)
        return None

    def price_of(obs: RawObservation | None, threshold: Decimal) -> Decimal | None:
        if obs is None:
            return None
        value = parse_number(obs.raw_text)
        if value is None:
            return None
        return quantize_price(
            to_gram_price(value, obs.unit, threshold, policy.borderline_ratio)
        )

    reference = _reference(observations)
    sell_obs = _first(observations, Role.SELL) or reference
    buy_obs = _first(observations, Role.BUY) or reference

    sell = price_of(sell_obs, policy.ounce_threshold)
    buy = price_of(buy_obs, policy.ounce_threshold)
    # Single-sided sources: the one observed value stands for both
    if sell is None:
        sell = buy
    if buy is None:
        buy = sell

    if not (_is_valid(buy) and _is_valid(sell)):
        logger.warning(
            "Rejected price | source={source} metal={metal} buy={buy} sell={sell} raw={raw}",
            source=source,
            metal=metal.value,
            buy=buy,
            sell=sell,
            raw=[(o.role.value, o.raw_text, o.unit.value) for o in observations],
        )
        return None

    change_percent_obs = _first(observations, Role.CHANGE_PERCENT)
    return NormalizedPrice(
        metal=metal,
        buy_price_per_gram=buy,
        sell_price_per_gram=sell,
        currency=policy.currency,
        source=source,
        observed_at=observed_at or datetime.now(timezone.utc),
        is_derived=False,
        opening_price_per_gram=price_of(
            _first(observations, Role.OPENING), policy.ounce_threshold
        ),
        change_per_gram=price_of(
            _first(observations, Role.CHANGE), policy.change_ounce_threshold
        ),
        change_percent=(
            parse_number(change_percent_obs.raw_text) if change_percent_obs else None
        ),
    )


def derive_from_rate(
    metal: Metal,
    rate: Decimal,
    policy: NormalizationPolicy,
    *,
    source: str,
    unit: Unit = Unit.OUNCE,
    observed_at: datetime | None = None,
) -> NormalizedPrice | None:
    """Derive a buy/sell pair from a single market rate using the spread factor.

    Used by the market-feed path, which only publishes one rate per metal:
    buy is the per-gram rate, sell is buy * spread_factor, and the record
    is marked as derived.
    """
    if not _is_valid(rate):
        logger.warning(
            "Rejected market rate | source={source} metal={metal} rate={rate}",
            source=source,
            metal=metal.value,
            rate=rate,
        )
        return None

    buy = quantize_price(to_gram_price(rate, unit, policy.ounce_threshold))
    sell = quantize_price(buy * policy.spread_factor)
    if not (_is_valid(buy) and _is_valid(sell)):
        return None

    return NormalizedPrice(
        metal=metal,
        buy_price_per_gram=buy,
        sell_price_per_gram=sell,
        currency=policy.currency,
        source=source,
        observed_at=observed_at or datetime.now(timezone.utc),
        is_derived=True,
    )
