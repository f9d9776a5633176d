"""
Strategy ladder: table, then cards, then a whole-page text scan.

The first strategy yielding at least one reconciled record wins for the page;
results from different strategies are never merged. Requested domains left
without a record are then checked for existence on the page so a listed
domain with no metrics becomes a confirmed zero instead of a failure.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial

from bs4 import BeautifulSoup

from app.domain.traffic import DOMAIN_NOT_FOUND_ERROR, TrafficRecord, month_key, utcnow
from app.scraping.config.models import SelectorConfig
from app.scraping.domains import find_domain_mention
from app.scraping.extraction.base import (
    NON_CONTENT_TAGS,
    CandidateRecord,
    ExtractionStrategy,
    RenderedPage,
    match_requested,
)
from app.scraping.extraction.cards import extract_from_cards
from app.scraping.extraction.diagnostics import SelectorReport, probe_selectors
from app.scraping.extraction.generic import extract_generic
from app.scraping.extraction.tabular import extract_from_table
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

# Markup that echoes the request rather than listing results.
EXISTENCE_EXCLUDED_TAGS = (*NON_CONTENT_TAGS, "head", "input", "textarea", "meta", "link", "title")

EXISTENCE_TEXT = "text"
EXISTENCE_MARKUP = "markup"


@dataclass(frozen=True)
class ExtractionOutcome:
    """
    Records for one rendered page, in requested order.

    `review` lists domains whose confirmed zero rests only on a markup match
    (attributes or hidden nodes), which can be a false positive.
    """

    records: list[TrafficRecord]
    strategy: str | None
    confirmed_zero: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    review: list[str] = field(default_factory=list)
    diagnostics: SelectorReport | None = None


def default_strategies(
    selectors: SelectorConfig | None = None,
) -> list[tuple[str, ExtractionStrategy]]:
    selectors = selectors or SelectorConfig()
    return [
        ("table", partial(extract_from_table, row_selectors=selectors.rows)),
        ("cards", partial(extract_from_cards, card_selectors=selectors.cards)),
        ("generic", extract_generic),
    ]


def reconcile(
    candidates: Sequence[CandidateRecord],
    requested: Sequence[str],
) -> dict[str, CandidateRecord]:
    """
    Match candidates to requested domains; first match per domain wins and
    candidates naming nothing requested are dropped.
    """

    matched: dict[str, CandidateRecord] = {}
    for candidate in candidates:
        domain = match_requested(candidate.domain_token, requested)
        if domain is None or domain in matched:
            continue
        matched[domain] = candidate
    return matched


def locate_domain(page: RenderedPage, domain: str) -> str | None:
    """
    Return where a domain appears on the page: visible text, markup, or None.
    """

    if find_domain_mention(page.text, domain) >= 0:
        return EXISTENCE_TEXT

    soup = BeautifulSoup(page.html, "html.parser")
    body = soup.body or soup
    for node in body.find_all(EXISTENCE_EXCLUDED_TAGS):
        node.decompose()
    if find_domain_mention(str(body), domain) >= 0:
        return EXISTENCE_MARKUP
    return None


class MultiStrategyExtractor:
    """
    Runs the strategy ladder over a rendered page.
    """

    def __init__(
        self,
        strategies: Sequence[tuple[str, ExtractionStrategy]] | None = None,
        *,
        selectors: SelectorConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._selectors = selectors or SelectorConfig()
        self._strategies = list(strategies) if strategies is not None else default_strategies(self._selectors)
        self._clock = clock

    def extract(self, page: RenderedPage, requested: Sequence[str]) -> ExtractionOutcome:
        requested = list(requested)
        matched: dict[str, CandidateRecord] = {}
        winner: str | None = None

        for name, strategy in self._strategies:
            try:
                candidates = strategy(page, requested)
            except Exception as exc:  # noqa: BLE001
                log_event(
                    logger,
                    logging.WARNING,
                    "traffic_strategy_failed",
                    strategy=name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            matched = reconcile(candidates, requested)
            if matched:
                winner = name
                break

        diagnostics = None
        if winner is None:
            diagnostics = probe_selectors(
                page,
                requested,
                configured_selectors=(*self._selectors.rows, *self._selectors.cards),
            )
            log_event(
                logger,
                logging.WARNING,
                "traffic_extraction_empty",
                url=page.url,
                ready=page.ready,
                failure_class=diagnostics.failure_class,
                working_selectors=diagnostics.working_selectors,
            )

        now = self._clock()
        period = month_key(now)
        records: list[TrafficRecord] = []
        confirmed_zero: list[str] = []
        missing: list[str] = []
        review: list[str] = []

        for domain in requested:
            candidate = matched.get(domain)
            if candidate is not None:
                records.append(
                    TrafficRecord(
                        domain=domain,
                        month_year=period,
                        monthly_visits=candidate.monthly_visits,
                        avg_session_duration_seconds=candidate.avg_session_duration_seconds,
                        bounce_rate=candidate.bounce_rate,
                        pages_per_visit=candidate.pages_per_visit,
                        checked_at=now,
                        growth_rate=candidate.growth_rate,
                        history=candidate.history,
                    )
                )
                continue

            location = locate_domain(page, domain)
            if location is None:
                missing.append(domain)
                records.append(TrafficRecord.failed(domain, DOMAIN_NOT_FOUND_ERROR, month_year=period))
                continue

            confirmed_zero.append(domain)
            if location == EXISTENCE_MARKUP:
                review.append(domain)
                log_event(
                    logger,
                    logging.WARNING,
                    "traffic_zero_from_markup",
                    domain=domain,
                    url=page.url,
                )
            records.append(
                TrafficRecord(domain=domain, month_year=period, monthly_visits=0, checked_at=now)
            )

        log_event(
            logger,
            logging.INFO,
            "traffic_extraction_summary",
            strategy=winner,
            requested=len(requested),
            extracted=len(matched),
            confirmed_zero=len(confirmed_zero),
            missing=len(missing),
            review=len(review),
        )
        return ExtractionOutcome(
            records=records,
            strategy=winner,
            confirmed_zero=confirmed_zero,
            missing=missing,
            review=review,
            diagnostics=diagnostics,
        )
