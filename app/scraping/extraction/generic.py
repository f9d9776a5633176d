"""
Whole-page text scan, the last rung of the extraction ladder.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from app.scraping.domains import find_domain_mention, mention_pattern
from app.scraping.extraction.base import CandidateRecord, RenderedPage
from app.scraping.extraction.cards import BOUNCE_PATTERN, PAGES_PATTERN, find_growth_rate
from app.scraping.extraction.history import extract_history
from app.scraping.parsing.metric_parsers import (
    CLOCK_DURATION_PATTERN,
    SUFFIXED_NUMBER_PATTERN,
    parse_duration,
    parse_pages_per_visit,
    parse_percentage,
    parse_suffixed_number,
    valid_bounce_rate,
)

WINDOW_CHARS = 500

VISITS_PATTERNS = (
    re.compile(rf"Total\s+Visits[:\s]*({SUFFIXED_NUMBER_PATTERN})", flags=re.IGNORECASE),
    re.compile(rf"({SUFFIXED_NUMBER_PATTERN})\s*(?:visits|monthly|traffic)", flags=re.IGNORECASE),
)
DURATION_PATTERNS = (
    re.compile(rf"({CLOCK_DURATION_PATTERN})"),
    re.compile(
        r"(?<![\d.])(\d+\s?h(?:\s*\d+\s?m)?(?:\s*\d+\s?s)?|\d+\s?m(?:\s*\d+\s?s)?|\d+\s?s)\b"
        r"(?!\s*(?:visits|monthly|traffic))"
    ),
)
# Unsigned only: signed percentages are growth rates.
PERCENT_PATTERN = re.compile(r"(?<![+\-\d.])(\d+(?:\.\d+)?)\s?%")


def extract_generic(page: RenderedPage, requested: Sequence[str]) -> list[CandidateRecord]:
    candidates: list[CandidateRecord] = []
    for domain in requested:
        window = text_window(page.text, domain, requested)
        if window is None:
            continue
        candidate = _parse_window(domain, window)
        if candidate.monthly_visits is None and candidate.avg_session_duration_seconds is None:
            continue
        candidates.append(candidate)
    return candidates


def text_window(text: str, domain: str, requested: Sequence[str]) -> str | None:
    """
    Text following the first mention of `domain`, cut short at the next
    mention of any other requested domain.
    """

    match = mention_pattern(domain).search(text or "")
    if match is None:
        return None
    window = text[match.end() : match.end() + WINDOW_CHARS]

    cut = len(window)
    for other in requested:
        if other == domain:
            continue
        position = find_domain_mention(window, other)
        if 0 <= position < cut:
            cut = position
    return window[:cut]


def _first_group(patterns: Sequence[re.Pattern[str]], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match is not None:
            return match.group(1)
    return None


def _parse_window(domain: str, window: str) -> CandidateRecord:
    visits_text = _first_group(VISITS_PATTERNS, window)
    duration_text = _first_group(DURATION_PATTERNS, window)
    pages_match = PAGES_PATTERN.search(window)

    bounce_match = BOUNCE_PATTERN.search(window) or PERCENT_PATTERN.search(window)
    bounce = valid_bounce_rate(parse_percentage(bounce_match.group(1))) if bounce_match else None

    return CandidateRecord(
        domain_token=domain,
        monthly_visits=parse_suffixed_number(visits_text),
        avg_session_duration_seconds=parse_duration(duration_text),
        bounce_rate=bounce,
        pages_per_visit=parse_pages_per_visit(pages_match.group(1)) if pages_match else None,
        growth_rate=find_growth_rate(window),
        history=extract_history(None, window),
    )
