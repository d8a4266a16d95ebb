"""Tests for unit normalization, buy/sell resolution and rejection."""

from datetime import datetime, timezone
from decimal import Decimal

from app.services.extractor import extract
from app.services.normalizer import (
    NormalizationPolicy,
    derive_from_rate,
    normalize,
    quantize_price,
    to_gram_price,
)
from app.services.price_types import GRAMS_PER_OUNCE, Metal, RawObservation, Role, Unit
from app.services.sources import GOLD_PRICE_TODAY, GOLDPRICEDATA_GOLD, GOLDPRICEDATA_SILVER


def obs(raw: str, role: Role = Role.UNKNOWN, unit: Unit = Unit.UNKNOWN, metal=Metal.GOLD):
    return RawObservation(metal=metal, label="test", raw_text=raw, unit=unit, role=role)


# ---------------------------------------------------------------------------
# Unit conversion
# ---------------------------------------------------------------------------


def test_ounce_range_value_is_divided_by_grams_per_ounce():
    value = Decimal("217221.76")
    assert to_gram_price(value, Unit.UNKNOWN, Decimal("10000")) == value / GRAMS_PER_OUNCE


def test_gram_range_value_is_unchanged():
    value = Decimal("6984.82")
    assert to_gram_price(value, Unit.UNKNOWN, Decimal("10000")) == value


def test_explicit_units_override_magnitude():
    # A per-gram quote above the threshold stays per gram when the source says so
    assert to_gram_price(Decimal("12000"), Unit.GRAM, Decimal("10000")) == Decimal("12000")
    assert to_gram_price(Decimal("2659.35"), Unit.OUNCE, Decimal("10000")) == (
        Decimal("2659.35") / GRAMS_PER_OUNCE
    )


def test_currency_tagged_ounce_price_normalizes_per_gram(policy):
    price = normalize([obs("217,221.76 EGP")], policy, source="test")

    expected = quantize_price(Decimal("217221.76") / GRAMS_PER_OUNCE)
    assert price.buy_price_per_gram == expected
    assert price.sell_price_per_gram == expected


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------


def test_explicit_sides_win_over_reference(policy):
    observations = [
        obs("6,984.82"),
        obs("6,990.00", role=Role.SELL),
        obs("6,960.00", role=Role.BUY),
    ]
    price = normalize(observations, policy, source="test")

    assert price.sell_price_per_gram == Decimal("6990.000000")
    assert price.buy_price_per_gram == Decimal("6960.000000")
    assert price.is_derived is False


def test_single_side_is_copied(policy):
    price = normalize([obs("6,990.00", role=Role.SELL)], policy, source="test")

    assert price.buy_price_per_gram == price.sell_price_per_gram == Decimal("6990")


def test_reference_prefers_gram_quote(policy):
    observations = [
        obs("2,659.35", unit=Unit.OUNCE, metal=Metal.SILVER),
        obs("85.50", unit=Unit.GRAM, metal=Metal.SILVER),
    ]
    price = normalize(observations, policy, source="test")

    assert price.metal == Metal.SILVER
    assert price.buy_price_per_gram == Decimal("85.50")


def test_gold_page_end_to_end(policy, gold_html):
    observed_at = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
    price = normalize(
        extract(gold_html, GOLDPRICEDATA_GOLD),
        policy,
        source=GOLDPRICEDATA_GOLD.name,
        observed_at=observed_at,
    )

    assert price.sell_price_per_gram == quantize_price(Decimal("217221.76") / GRAMS_PER_OUNCE)
    assert price.buy_price_per_gram == quantize_price(Decimal("217100.00") / GRAMS_PER_OUNCE)
    assert price.opening_price_per_gram == quantize_price(Decimal("216000.00") / GRAMS_PER_OUNCE)
    assert price.change_per_gram == quantize_price(Decimal("1221.76") / GRAMS_PER_OUNCE)
    assert price.change_percent == Decimal("0.57")
    assert price.currency == "EGP"
    assert price.observed_at == observed_at


def test_silver_and_karat_pages(policy, silver_html, karat_html):
    silver = normalize(extract(silver_html, GOLDPRICEDATA_SILVER), policy, source="s")
    karat = normalize(extract(karat_html, GOLD_PRICE_TODAY), policy, source="k")

    assert silver.buy_price_per_gram == silver.sell_price_per_gram == Decimal("85.50")
    assert karat.sell_price_per_gram == Decimal("6990")
    assert karat.buy_price_per_gram == Decimal("6960")


def test_change_uses_its_own_threshold(policy):
    small = normalize(
        [obs("6,984.82"), obs("300", role=Role.CHANGE)], policy, source="test"
    )
    large = normalize(
        [obs("6,984.82"), obs("600", role=Role.CHANGE)], policy, source="test"
    )

    assert small.change_per_gram == Decimal("300")
    assert large.change_per_gram == quantize_price(Decimal("600") / GRAMS_PER_OUNCE)


def test_observations_for_other_metals_are_ignored(policy):
    observations = [obs("85.50", metal=Metal.SILVER), obs("6,984.82")]
    price = normalize(observations, policy, source="test", metal=Metal.GOLD)

    assert price.metal == Metal.GOLD
    assert price.buy_price_per_gram == Decimal("6984.82")


# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------


def test_no_observations_is_not_available(policy):
    assert normalize([], policy, source="test", metal=Metal.GOLD) is None


def test_non_positive_side_rejects_record(policy):
    observations = [obs("0", role=Role.SELL), obs("6,960.00", role=Role.BUY)]

    assert normalize(observations, policy, source="test") is None


def test_negative_value_rejects_record(policy):
    assert normalize([obs("-6,960.00")], policy, source="test") is None


def test_only_unparsable_values_rejects_record(policy):
    assert normalize([obs("n/a", role=Role.SELL)], policy, source="test") is None


# ---------------------------------------------------------------------------
# Spread derivation
# ---------------------------------------------------------------------------


def test_derive_from_rate_applies_spread():
    policy = NormalizationPolicy(spread_factor=Decimal("0.98"))
    price = derive_from_rate(Metal.GOLD, Decimal("217221.76"), policy, source="metals-api")

    buy = quantize_price(Decimal("217221.76") / GRAMS_PER_OUNCE)
    assert price.buy_price_per_gram == buy
    assert price.sell_price_per_gram == quantize_price(buy * Decimal("0.98"))
    assert price.is_derived is True
    assert price.source == "metals-api"


def test_derive_from_rate_rejects_zero(policy):
    assert derive_from_rate(Metal.SILVER, Decimal("0"), policy, source="metals-api") is None
