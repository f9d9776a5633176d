"""
Table-row extraction strategy.

Upstream tables read ``Website | Visits | Avg. Duration | Pages/Visit | Bounce Rate``,
sometimes followed by a signed ``Growth`` column. Header text decides column
roles and positional defaults cover headerless tables.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from bs4 import BeautifulSoup, Tag

from app.scraping.config.models import DEFAULT_ROW_SELECTORS
from app.scraping.extraction.base import CandidateRecord, RenderedPage, clean_text
from app.scraping.parsing.metric_parsers import (
    SIGNED_PERCENTAGE_PATTERN,
    parse_duration,
    parse_growth_rate,
    parse_pages_per_visit,
    parse_percentage,
    parse_suffixed_number,
    valid_bounce_rate,
)

DEFAULT_COLUMNS = {"visits": 1, "duration": 2, "pages": 3, "bounce": 4}
_CLOCK_REGEX = re.compile(r"\d{2}:\d{2}:\d{2}")
_SUFFIX_REGEX = re.compile(r"\d\s?[KMB]\b", flags=re.IGNORECASE)
_SIGNED_REGEX = re.compile(SIGNED_PERCENTAGE_PATTERN)
_GROWTH_CELL_REGEX = re.compile(r"[+-]?\d+(?:\.\d+)?\s?%")
GROWTH_HEADERS = ("growth", "change", "decline", "trend")


def extract_from_table(
    page: RenderedPage,
    requested: Sequence[str],
    *,
    row_selectors: Sequence[str] = DEFAULT_ROW_SELECTORS,
) -> list[CandidateRecord]:
    soup = page.soup()
    rows = _select_rows(soup, row_selectors)
    if not rows:
        return []

    columns = infer_columns(_header_texts(soup))
    candidates: list[CandidateRecord] = []
    for row in rows:
        cells = [clean_text(cell.get_text(" ")) for cell in row.find_all(["td", "th"])]
        if not cells or not cells[0]:
            continue
        candidate = _parse_row(cells, columns)
        if candidate.has_metrics:
            candidates.append(candidate)
    return candidates


def infer_columns(headers: Sequence[str]) -> dict[str, int]:
    """
    Map column roles to indexes from header text, falling back to defaults.
    """

    columns: dict[str, int] = {}
    for index, raw in enumerate(headers):
        header = raw.lower()
        if any(keyword in header for keyword in GROWTH_HEADERS):
            columns.setdefault("growth", index)
        elif "visit" in header and "page" not in header:
            columns.setdefault("visits", index)
        elif "duration" in header or "avg" in header:
            columns.setdefault("duration", index)
        elif "page" in header:
            columns.setdefault("pages", index)
        elif "bounce" in header:
            columns.setdefault("bounce", index)
    return {**DEFAULT_COLUMNS, **columns}


def _select_rows(soup: BeautifulSoup, selectors: Sequence[str]) -> list[Tag]:
    for selector in selectors:
        rows = soup.select(selector)
        if rows:
            return rows
    return []


def _header_texts(soup: BeautifulSoup) -> list[str]:
    header_row = soup.select_one("table thead tr") or soup.select_one("table tr")
    if header_row is None:
        return []
    return [clean_text(cell.get_text(" ")) for cell in header_row.find_all(["th", "td"])]


def _cell(cells: Sequence[str], index: int) -> str:
    return cells[index] if 0 <= index < len(cells) else ""


def _parse_row(cells: Sequence[str], columns: dict[str, int]) -> CandidateRecord:
    growth_index = columns.get("growth")
    metric_cells = [
        text
        for index, text in enumerate(cells)
        if index > 0 and index != growth_index and not _SIGNED_REGEX.search(text)
    ]

    visits = parse_suffixed_number(_cell(cells, columns["visits"]))
    if visits is None:
        for text in metric_cells:
            parsed = parse_suffixed_number(text)
            if parsed is None or parsed <= 100:
                continue
            if _SUFFIX_REGEX.search(text) or parsed > 1000:
                visits = parsed
                break

    duration = None
    duration_match = _CLOCK_REGEX.search(_cell(cells, columns["duration"]))
    if duration_match is None:
        duration_match = next(
            (match for match in map(_CLOCK_REGEX.search, metric_cells) if match),
            None,
        )
    if duration_match is not None:
        duration = parse_duration(duration_match.group(0))

    pages = parse_pages_per_visit(_cell(cells, columns["pages"]))
    if pages is None:
        for text in metric_cells:
            if "%" in text or ":" in text:
                continue
            # Suffixed visit counts like "3.72K" never parse as a plain decimal.
            pages = parse_pages_per_visit(text)
            if pages is not None:
                break

    bounce = None
    bounce_cell = _cell(cells, columns["bounce"])
    if "%" in bounce_cell:
        bounce = valid_bounce_rate(parse_percentage(bounce_cell))
    if bounce is None:
        for text in metric_cells:
            if "%" in text:
                bounce = valid_bounce_rate(parse_percentage(text))
                if bounce is not None:
                    break

    growth = None
    if growth_index is not None:
        growth_match = _GROWTH_CELL_REGEX.search(_cell(cells, growth_index))
        growth = parse_growth_rate(growth_match.group(0)) if growth_match else None
    if growth is None:
        signed = next((match for match in map(_SIGNED_REGEX.search, cells[1:]) if match), None)
        growth = parse_growth_rate(signed.group(0)) if signed else None

    return CandidateRecord(
        domain_token=cells[0],
        monthly_visits=visits,
        avg_session_duration_seconds=duration,
        bounce_rate=bounce,
        pages_per_visit=pages,
        growth_rate=growth,
    )
