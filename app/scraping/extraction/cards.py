"""
Card extraction strategy.

Each card shows one domain with labeled metrics, e.g.
``example.com Total Visits 3.72K Avg. Duration 00:14:24 Pages per Visit 3.13
Bounce Rate 31.93%``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from bs4 import Tag

from app.scraping.config.models import DEFAULT_CARD_SELECTORS
from app.scraping.domains import find_domain_mention
from app.scraping.extraction.base import (
    CandidateRecord,
    RenderedPage,
    clean_text,
    mentioned_domains,
)
from app.scraping.extraction.history import extract_history
from app.scraping.parsing.metric_parsers import (
    SIGNED_PERCENTAGE_PATTERN,
    SUFFIXED_NUMBER_PATTERN,
    parse_duration,
    parse_growth_rate,
    parse_pages_per_visit,
    parse_percentage,
    parse_suffixed_number,
    valid_bounce_rate,
)

DOMAIN_TOKEN_SELECTORS = (
    "a[href*='http']",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
    "[class*='domain']",
    "[class*='title']",
    "strong",
    "b",
    "[data-domain]",
)

VISITS_PATTERN = re.compile(rf"Total\s+Visits[:\s]*({SUFFIXED_NUMBER_PATTERN})", flags=re.IGNORECASE)
DURATION_PATTERNS = (
    re.compile(r"Avg\.?\s*Duration[:\s]*(\d{1,2}:\d{2}:\d{2})", flags=re.IGNORECASE),
    re.compile(r"Duration[:\s]*(\d{1,2}:\d{2}:\d{2})", flags=re.IGNORECASE),
    re.compile(r"\b(\d{2}:\d{2}:\d{2})\b"),
)
PAGES_PATTERN = re.compile(
    r"Pages\s*(?:per\s*|/\s*)Visit[:\s]*(\d+(?:\.\d+)?)",
    flags=re.IGNORECASE,
)
BOUNCE_PATTERN = re.compile(r"Bounce\s*Rate[:\s]*(\d+(?:\.\d+)?)\s?%", flags=re.IGNORECASE)
GROWTH_PATTERN = re.compile(rf"({SIGNED_PERCENTAGE_PATTERN})")

_WINDOW_NUMBER = re.compile(SUFFIXED_NUMBER_PATTERN, flags=re.IGNORECASE)
_WINDOW_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s?%")

VISITS_WINDOW = 50
PAGES_WINDOW = 20
BOUNCE_WINDOW = 40
GROWTH_WINDOW = 300
GROWTH_CONTEXT = 30

# Labels that end the "Total Visits" block of a card.
NON_VISIT_LABELS = ("avg", "duration", "pages", "bounce")


def extract_from_cards(
    page: RenderedPage,
    requested: Sequence[str],
    *,
    card_selectors: Sequence[str] = DEFAULT_CARD_SELECTORS,
) -> list[CandidateRecord]:
    soup = page.soup()
    cards: list[Tag] = []
    for selector in card_selectors:
        cards = soup.select(selector)
        if cards:
            break

    candidates: list[CandidateRecord] = []
    for card in cards:
        card_text = clean_text(card.get_text(" "))
        if not card_text:
            continue
        # Wrappers around several cards would smear one domain's numbers onto another.
        if len(mentioned_domains(card_text, requested)) >= 2:
            continue

        token = find_domain_token(card, card_text, requested)
        if token is None:
            continue
        candidate = parse_card_text(token, card_text, card=card)
        if candidate.monthly_visits is None and candidate.avg_session_duration_seconds is None:
            continue
        candidates.append(candidate)
    return candidates


def find_domain_token(card: Tag, card_text: str, requested: Sequence[str]) -> str | None:
    """
    Find which requested domain a card belongs to.

    Prominent elements (links, headings, strong text, data attributes) are
    checked first; the whole card text is the fallback.
    """

    for selector in DOMAIN_TOKEN_SELECTORS:
        element = card.select_one(selector)
        if element is None:
            continue
        texts = [element.get_text(" ", strip=True), str(element.get("data-domain") or "")]
        for text in texts:
            for domain in requested:
                if text and find_domain_mention(text, domain) >= 0:
                    return domain

    mentioned = mentioned_domains(card_text, requested)
    return mentioned[0] if mentioned else None


def parse_card_text(token: str, card_text: str, *, card: Tag | None = None) -> CandidateRecord:
    return CandidateRecord(
        domain_token=token,
        monthly_visits=_visits(card_text),
        avg_session_duration_seconds=_duration(card_text),
        bounce_rate=_bounce_rate(card_text),
        pages_per_visit=_pages_per_visit(card_text),
        growth_rate=find_growth_rate(card_text),
        history=extract_history(card, card_text),
    )


def find_growth_rate(text: str) -> float | None:
    """
    Signed change shown next to the visit count, e.g. ``Total Visits 3.72K +19.66%``.

    The block after "Total Visits" is searched first; any other signed
    percentage not labelled as a bounce rate is the fallback.
    """

    block = _window_after(text, "total visits", GROWTH_WINDOW)
    if block is not None:
        lowered = block.lower()
        cut = min((lowered.find(label) for label in NON_VISIT_LABELS if label in lowered), default=len(block))
        match = GROWTH_PATTERN.search(block[:cut])
        parsed = parse_growth_rate(match.group(1)) if match else None
        if parsed is not None:
            return parsed

    for match in GROWTH_PATTERN.finditer(text):
        if "bounce" in text[max(0, match.start() - GROWTH_CONTEXT) : match.start()].lower():
            continue
        parsed = parse_growth_rate(match.group(1))
        if parsed is not None:
            return parsed
    return None


def _window_after(text: str, label: str, width: int) -> str | None:
    index = text.lower().find(label)
    if index == -1:
        return None
    start = index + len(label)
    return text[start : start + width]


def _visits(card_text: str) -> int | None:
    match = VISITS_PATTERN.search(card_text)
    if match is not None:
        parsed = parse_suffixed_number(match.group(1))
        if parsed is not None:
            return parsed

    window = _window_after(card_text, "total visits", VISITS_WINDOW)
    if window is None:
        return None
    number = _WINDOW_NUMBER.search(window)
    return parse_suffixed_number(number.group(0)) if number else None


def _duration(card_text: str) -> int | None:
    for pattern in DURATION_PATTERNS:
        match = pattern.search(card_text)
        if match is not None:
            return parse_duration(match.group(1))
    return None


def _pages_per_visit(card_text: str) -> float | None:
    match = PAGES_PATTERN.search(card_text)
    if match is not None:
        parsed = parse_pages_per_visit(match.group(1))
        if parsed is not None:
            return parsed

    for label in ("pages per visit", "pages/visit"):
        window = _window_after(card_text, label, PAGES_WINDOW)
        if window is None:
            continue
        number = re.match(r"^[:\s]*(\d+(?:\.\d+)?)", window)
        if number is not None:
            return parse_pages_per_visit(number.group(1))
    return None


def _bounce_rate(card_text: str) -> float | None:
    match = BOUNCE_PATTERN.search(card_text)
    if match is not None:
        parsed = valid_bounce_rate(parse_percentage(match.group(1)))
        if parsed is not None:
            return parsed

    window = _window_after(card_text, "bounce rate", BOUNCE_WINDOW)
    if window is None:
        window = _window_after(card_text, "bounce", BOUNCE_WINDOW)
    if window is None:
        return None
    percent = _WINDOW_PERCENT.search(window)
    return valid_bounce_rate(parse_percentage(percent.group(1))) if percent else None
