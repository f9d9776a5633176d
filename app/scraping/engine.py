"""
Traffic scraping engine: render one sub-batch and run the extraction ladder.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from app.domain.traffic import TrafficRecord
from app.scraping.browser import BrowserSessionManager
from app.scraping.extraction import ExtractionOutcome, MultiStrategyExtractor
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)


class TrafficScrapingEngine:
    """
    Turns up to ten domains into traffic records using a shared browser.
    """

    def __init__(
        self,
        *,
        sessions: BrowserSessionManager,
        extractor: MultiStrategyExtractor | None = None,
    ) -> None:
        self._sessions = sessions
        self._extractor = extractor or MultiStrategyExtractor(selectors=sessions.settings.selectors)

    async def scrape(self, domains: Sequence[str]) -> list[TrafficRecord]:
        outcome = await self.scrape_outcome(domains)
        return outcome.records

    async def scrape_outcome(self, domains: Sequence[str]) -> ExtractionOutcome:
        page = await self._sessions.render(domains)
        outcome = self._extractor.extract(page, domains)
        log_event(
            logger,
            logging.INFO,
            "traffic_batch_scraped",
            domains=len(domains),
            ready=page.ready,
            strategy=outcome.strategy,
            succeeded=sum(1 for record in outcome.records if record.succeeded),
            confirmed_zero=len(outcome.confirmed_zero),
            missing=len(outcome.missing),
        )
        return outcome
