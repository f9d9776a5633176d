"""
Shared types and helpers for the extraction strategies.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from bs4 import BeautifulSoup

from app.domain.traffic import HistoricalMonth
from app.scraping.domains import cache_key, find_domain_mention, normalize_domain

NON_CONTENT_TAGS = ("script", "style", "noscript", "template")


@dataclass(frozen=True)
class RenderedPage:
    """
    Snapshot of one rendered upstream page.

    `text` is the visible body text; `html` the full serialized document.
    `ready` is False when the readiness wait timed out and the capture is partial.
    """

    url: str
    html: str
    text: str
    ready: bool = True

    @classmethod
    def from_html(cls, html: str, *, url: str = "", ready: bool = True) -> "RenderedPage":
        soup = BeautifulSoup(html, "html.parser")
        body = soup.body or soup
        for node in body.find_all(NON_CONTENT_TAGS):
            node.decompose()
        return cls(url=url, html=html, text=clean_text(body.get_text(" ")), ready=ready)

    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")


@dataclass(frozen=True)
class CandidateRecord:
    """
    Unreconciled metrics pulled from one row, card or text window.

    `domain_token` is whatever the page showed; it is matched against the
    requested domains afterwards.
    """

    domain_token: str
    monthly_visits: int | None = None
    avg_session_duration_seconds: int | None = None
    bounce_rate: float | None = None
    pages_per_visit: float | None = None
    growth_rate: float | None = None
    history: tuple[HistoricalMonth, ...] = ()

    @property
    def has_metrics(self) -> bool:
        return any(
            value is not None
            for value in (
                self.monthly_visits,
                self.avg_session_duration_seconds,
                self.bounce_rate,
                self.pages_per_visit,
            )
        )


ExtractionStrategy = Callable[[RenderedPage, Sequence[str]], list[CandidateRecord]]


def clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


def match_requested(token: str, requested: Sequence[str]) -> str | None:
    """
    Resolve a page token to the requested domain it names, matching bare and
    ``www.`` forms. Returns None for tokens that name nothing requested.
    """

    pieces = clean_text(token).split(" ")
    if not pieces or not pieces[0]:
        return None
    key = cache_key(normalize_domain(pieces[0]))
    for domain in requested:
        if cache_key(domain) == key:
            return domain
    return None


def mentioned_domains(text: str, requested: Sequence[str]) -> list[str]:
    """
    Requested domains mentioned in `text`, ordered by first mention.
    """

    positions = []
    for domain in requested:
        index = find_domain_mention(text, domain)
        if index >= 0:
            positions.append((index, domain))
    return [domain for _, domain in sorted(positions)]
