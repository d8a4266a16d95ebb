"""Price extraction from raw source documents.

Turns the bytes of an HTML page or JSON payload into RawObservation
values, driven entirely by the matchers of a SourceConfig. Extraction is
a pure function of the document: no I/O, no normalization. A missing or
unparsable field simply yields no observation; only a document that is
not the expected structural format at all raises MalformedDocument.
"""

import json
import re
from decimal import Decimal, InvalidOperation

from bs4 import BeautifulSoup
from bs4.element import Tag
from loguru import logger

from app.services.price_types import RawObservation, Role
from app.services.sources import (
    AttributeMatcher,
    DocumentFormat,
    IndicatorMatcher,
    RowMatcher,
    SourceConfig,
)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_NUMBER = r"(-?\d[\d,]*(?:\.\d+)?)"
_PERCENT = re.compile(r"(-?[\d.,]+)\s*%")


def _phrase_at(folded: str, phrase: str) -> int:
    """Offset of ``phrase`` as a whole word in ``folded``, or -1."""
    head = r"(?<!\w)" if phrase[:1].isalnum() else ""
    tail = r"(?!\w)" if phrase[-1:].isalnum() else ""
    match = re.search(head + re.escape(phrase) + tail, folded)
    return match.start() if match else -1


class MalformedDocument(ValueError):
    """Raised when a document cannot be parsed as its source's format."""


def parse_number(text: str | None) -> Decimal | None:
    """Parse a numeric token out of label-polluted text.

    Strips everything except digits, the decimal point and a leading minus
    sign, then parses as Decimal. Returns None for anything that does not
    parse (empty text, several decimal points, stray minus signs).

    >>> parse_number("217,221.76 EGP")
    Decimal('217221.76')
    """
    if not text:
        return None
    cleaned = _NON_NUMERIC.sub("", text)
    negative = cleaned.startswith("-")
    cleaned = cleaned.replace("-", "")
    if negative:
        cleaned = "-" + cleaned
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def extract(document: bytes, source: SourceConfig) -> list[RawObservation]:
    """Extract raw price observations from a document for one source.

    Observations are returned in matcher priority order: attribute
    matchers, then table rows, then free-text indicators (or the JSON
    fields for JSON sources).

    Raises:
        MalformedDocument: if the document is not valid for the source format.
    """
    if source.format == DocumentFormat.JSON:
        observations = _extract_json(document, source)
    else:
        observations = _extract_html(document, source)

    logger.debug(
        "Extracted {count} observations | source={source}",
        count=len(observations),
        source=source.name,
    )
    return observations


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def _load_html(document: bytes) -> BeautifulSoup:
    if not document or not document.strip():
        raise MalformedDocument("empty document")
    soup = BeautifulSoup(document, "html.parser")
    if soup.find(True) is None:
        raise MalformedDocument("document contains no markup elements")
    return soup


def _extract_html(document: bytes, source: SourceConfig) -> list[RawObservation]:
    soup = _load_html(document)
    observations: list[RawObservation] = []

    for matcher in source.attribute_matchers:
        obs = _match_attribute(soup, matcher, source)
        if obs is not None:
            observations.append(obs)

    if source.row_matchers:
        rows = soup.select(source.row_selector)
        for matcher in source.row_matchers:
            observations.extend(_match_rows(rows, matcher, source))

    if source.indicator_matchers:
        containers = soup.select(source.indicator_selector)
        for matcher in source.indicator_matchers:
            obs = _match_indicator(containers, matcher, source)
            if obs is not None:
                observations.append(obs)

    return observations


def _match_attribute(
    soup: BeautifulSoup, matcher: AttributeMatcher, source: SourceConfig
) -> RawObservation | None:
    element = soup.select_one(matcher.selector)
    if element is None:
        return None
    text = element.get_text(strip=True)
    if parse_number(text) is None:
        return None
    return RawObservation(
        metal=source.metal,
        label=matcher.label,
        raw_text=text,
        unit=matcher.unit,
        role=matcher.role,
    )


def _cell_text(cell: Tag, value_selector: str) -> str:
    if value_selector:
        value = cell.select_one(value_selector)
        if value is not None:
            return value.get_text(strip=True)
    return cell.get_text(strip=True)


def _match_rows(
    rows: list[Tag], matcher: RowMatcher, source: SourceConfig
) -> list[RawObservation]:
    """Read the value cells of the first row whose label matches."""
    for row in rows:
        cells = row.find_all(["td", "th"], recursive=False)
        if not cells:
            continue
        label_text = cells[0].get_text(" ", strip=True)
        if not any(pattern in label_text for pattern in matcher.patterns):
            continue

        observations = []
        value_cells = cells[1 : 1 + len(matcher.roles)]
        for role, cell in zip(matcher.roles, value_cells):
            text = _cell_text(cell, source.value_selector)
            if parse_number(text) is None:
                continue
            observations.append(
                RawObservation(
                    metal=source.metal,
                    label=matcher.label,
                    raw_text=text,
                    unit=matcher.unit,
                    role=role,
                )
            )
        # First matching row wins even if its cells were unparsable
        return observations
    return []


def _number_near_marker(text: str, marker: str) -> str | None:
    """Return the first number directly before, else directly after, a currency marker."""
    marker_re = re.escape(marker)
    before = re.search(_NUMBER + r"\s*" + marker_re, text)
    if before:
        return before.group(1)
    after = re.search(marker_re + r"\s*" + _NUMBER, text)
    if after:
        return after.group(1)
    return None


def _match_indicator(
    containers: list[Tag], matcher: IndicatorMatcher, source: SourceConfig
) -> RawObservation | None:
    phrases = [p.casefold() for p in matcher.phrases]
    excludes = [e.casefold() for e in matcher.excludes]

    for container in containers:
        text = container.get_text(" ", strip=True)
        folded = text.casefold()
        hits = [i for i in (_phrase_at(folded, p) for p in phrases) if i >= 0]
        if not hits:
            continue
        if any(_phrase_at(folded, e) >= 0 for e in excludes):
            continue

        # casefold() keeps offsets for the Arabic and ASCII phrases used here
        tail = text[min(hits):]
        if matcher.role == Role.CHANGE_PERCENT:
            match = _PERCENT.search(tail)
            raw = match.group(1) if match else None
        else:
            raw = _number_near_marker(tail, source.currency_marker)

        if raw is None or parse_number(raw) is None:
            continue
        return RawObservation(
            metal=source.metal,
            label=matcher.phrases[0],
            raw_text=raw,
            unit=matcher.unit,
            role=matcher.role,
        )
    return None


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def _lookup(payload: dict, path: str):
    node = payload
    for key in path.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def _extract_json(document: bytes, source: SourceConfig) -> list[RawObservation]:
    try:
        payload = json.loads(document)
    except (ValueError, TypeError) as exc:
        raise MalformedDocument(f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedDocument("JSON document is not an object")

    if payload.get("success") is False:
        logger.warning(
            "Source reported failure | source={source} error={error}",
            source=source.name,
            error=payload.get("error"),
        )
        return []

    observations = []
    for matcher in source.json_fields:
        value = _lookup(payload, matcher.path)
        if value is None or isinstance(value, (dict, list, bool)):
            continue
        if isinstance(value, (int, float)):
            # Plain notation: exponents would not survive parse_number
            text = format(Decimal(str(value)), "f")
        else:
            text = str(value)
        if parse_number(text) is None:
            continue
        observations.append(
            RawObservation(
                metal=matcher.metal or source.metal,
                label=matcher.label,
                raw_text=text,
                unit=matcher.unit,
                role=matcher.role,
            )
        )
    return observations
