"""Declarative price source configuration.

Each source is described by a table of label matchers instead of ad hoc
string scans, so source-specific quirks (markup selectors, bilingual
labels, units) live here and the extractor stays generic. Matchers are
evaluated in the order they are declared; the first match per matcher
wins.
"""

from dataclasses import dataclass, field
from enum import Enum

from app.services.price_types import Metal, Role, Unit


class DocumentFormat(str, Enum):
    HTML = "html"
    JSON = "json"


@dataclass(frozen=True)
class AttributeMatcher:
    """Read the text of the first element matching a CSS selector."""

    selector: str
    label: str
    role: Role = Role.UNKNOWN
    unit: Unit = Unit.UNKNOWN


@dataclass(frozen=True)
class RowMatcher:
    """Match a table row by its label cell and read the value cell(s) after it.

    ``roles`` names the value cells in order: one role reads one cell, two
    roles (e.g. SELL, BUY) read two adjacent cells.
    """

    patterns: tuple[str, ...]
    label: str
    roles: tuple[Role, ...] = (Role.UNKNOWN,)
    unit: Unit = Unit.UNKNOWN
    language: str = "ar"


@dataclass(frozen=True)
class IndicatorMatcher:
    """Find a currency-tagged number next to a free-text label phrase."""

    phrases: tuple[str, ...]
    role: Role
    excludes: tuple[str, ...] = ()
    unit: Unit = Unit.UNKNOWN


@dataclass(frozen=True)
class JsonFieldMatcher:
    """Read a value at a dotted path of a JSON object.

    ``metal`` overrides the source's metal for feeds that quote several
    metals in one payload.
    """

    path: str
    label: str
    role: Role = Role.UNKNOWN
    unit: Unit = Unit.UNKNOWN
    metal: Metal | None = None


@dataclass(frozen=True)
class SourceConfig:
    name: str
    url: str
    metal: Metal
    format: DocumentFormat = DocumentFormat.HTML
    currency_marker: str = "EGP"
    row_selector: str = "table.gradient-style tr"
    value_selector: str = "span.rate-res"
    indicator_selector: str = "table tr, .divTableRow"
    attribute_matchers: tuple[AttributeMatcher, ...] = ()
    row_matchers: tuple[RowMatcher, ...] = ()
    indicator_matchers: tuple[IndicatorMatcher, ...] = ()
    json_fields: tuple[JsonFieldMatcher, ...] = ()
    headers: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None


# ---------------------------------------------------------------------------
# Market indicator phrases (Arabic first, English second)
# ---------------------------------------------------------------------------
SELL_PHRASES = ("سعر البيع", "sell price")
BUY_PHRASES = ("سعر الشراء", "buy price")
OPENING_PHRASES = ("سعر الفتح", "opening price")
CHANGE_PHRASES = ("التغير", "change")
CHANGE_PERCENT_PHRASES = ("نسبة التغير", "change percent", "change %")

MARKET_INDICATORS = (
    IndicatorMatcher(SELL_PHRASES, Role.SELL),
    IndicatorMatcher(BUY_PHRASES, Role.BUY),
    IndicatorMatcher(OPENING_PHRASES, Role.OPENING),
    IndicatorMatcher(CHANGE_PHRASES, Role.CHANGE, excludes=CHANGE_PERCENT_PHRASES),
    IndicatorMatcher(CHANGE_PERCENT_PHRASES, Role.CHANGE_PERCENT),
)

BROWSER_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"


GOLDPRICEDATA_GOLD = SourceConfig(
    name="goldpricedata-gold",
    url="https://www.goldpricedata.com/gold-rates/egypt/",
    metal=Metal.GOLD,
    attribute_matchers=(
        AttributeMatcher('span[data-u="XAU24K-1-rate"]', label="XAU24K"),
    ),
    row_matchers=(
        RowMatcher(("24 قيراط",), label="24K", language="ar"),
        RowMatcher(("24K",), label="24K", language="en"),
    ),
    indicator_matchers=MARKET_INDICATORS,
)

GOLDPRICEDATA_SILVER = SourceConfig(
    name="goldpricedata-silver",
    url="https://www.goldpricedata.com/silver-rates/egypt/",
    metal=Metal.SILVER,
    attribute_matchers=(
        AttributeMatcher('span[data-u="XAG-1-rate"]', label="XAG", unit=Unit.GRAM),
    ),
    row_matchers=(
        RowMatcher(("جرام", "Gram"), label="gram", unit=Unit.GRAM),
        RowMatcher(("أونصة", "Ounce"), label="ounce", unit=Unit.OUNCE),
    ),
    indicator_matchers=MARKET_INDICATORS[:2],
)

# Fallback gold source: karat table with explicit sell/buy columns
GOLD_PRICE_TODAY = SourceConfig(
    name="gold-price-today",
    url="https://egypt.gold-price-today.com/",
    metal=Metal.GOLD,
    row_selector="table tr",
    value_selector="",
    row_matchers=(
        RowMatcher(("عيار 24",), label="24K", roles=(Role.SELL, Role.BUY), unit=Unit.GRAM),
    ),
)

METALS_API = SourceConfig(
    name="metals-api",
    url="https://metals-api.com/api/latest",
    metal=Metal.GOLD,
    format=DocumentFormat.JSON,
    json_fields=(
        JsonFieldMatcher("rates.XAU", label="XAU", unit=Unit.OUNCE, metal=Metal.GOLD),
        JsonFieldMatcher("rates.XAG", label="XAG", unit=Unit.OUNCE, metal=Metal.SILVER),
    ),
)

# Ingestion order doubles as fallback priority within each metal
DEFAULT_SOURCES: tuple[SourceConfig, ...] = (
    GOLDPRICEDATA_GOLD,
    GOLD_PRICE_TODAY,
    GOLDPRICEDATA_SILVER,
)


def browser_headers(user_agent: str) -> dict[str, str]:
    """Request headers that make scraped sources serve their normal page."""
    return {
        "User-Agent": user_agent,
        "Accept": BROWSER_ACCEPT,
        "Accept-Language": "en-US,en;q=0.5",
    }
