"""
Past-month visits from the "Visits Over Time" graph shown with each result.

The graph renders its points as text (``2025/09 visits: 576.19K`` in tooltips
and SVG labels) or as data attributes (``data-month="2025/09"
data-visits="576190"``). Both forms are read; text labels never override an
attribute value for the same month.
"""

from __future__ import annotations

import re

from bs4 import Tag

from app.domain.traffic import TREND_PERIOD_MONTHS, HistoricalMonth
from app.scraping.parsing.metric_parsers import (
    MONTH_LABEL_PATTERN,
    SUFFIXED_NUMBER_PATTERN,
    parse_month_label,
    parse_suffixed_number,
)

HISTORY_MONTHS = max(TREND_PERIOD_MONTHS.values())

_MONTH_REGEX = re.compile(MONTH_LABEL_PATTERN)
# A value directly followed by "/09" is the next axis label, not a visit count.
_LABELLED_VISITS = re.compile(
    rf"({MONTH_LABEL_PATTERN})\s*(?:visits?)?[:\s]*({SUFFIXED_NUMBER_PATTERN})(?![/-]\d)",
    flags=re.IGNORECASE,
)


def extract_history(
    container: Tag | None,
    text: str,
    *,
    limit: int = HISTORY_MONTHS,
) -> tuple[HistoricalMonth, ...]:
    """
    Return up to `limit` months, most recent first, with positive visit counts.
    """

    months: dict[str, int] = {}
    if container is not None:
        for element in container.select("[data-month], [data-date]"):
            month = _month_from(str(element.get("data-month") or element.get("data-date") or ""))
            visits = parse_suffixed_number(str(element.get("data-visits") or element.get("data-value") or ""))
            if month and visits:
                months.setdefault(month, visits)

    for match in _LABELLED_VISITS.finditer(text or ""):
        month = parse_month_label(match.group(1))
        visits = parse_suffixed_number(match.group(2))
        if month and visits:
            months.setdefault(month, visits)

    recent = sorted(months.items(), reverse=True)[:limit]
    return tuple(HistoricalMonth(month_year=month, monthly_visits=visits) for month, visits in recent)


def _month_from(raw: str) -> str | None:
    match = _MONTH_REGEX.search(raw)
    return parse_month_label(match.group(0)) if match else None
