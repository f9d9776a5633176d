"""
app/services/traffic_service.py

Service orchestration for batch traffic extraction behind the snapshot cache.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import (
    BackgroundRetrySettings,
    RetrySettings,
    get_background_retry_settings,
    get_retry_settings,
)
from app.domain.traffic import (
    DEFAULT_TREND_PERIOD,
    MISSING_RESULT_ERROR,
    PENDING_RESULT_ERROR,
    TREND_PERIOD_MONTHS,
    TrafficBatchMetadata,
    TrafficBatchResult,
    TrafficRecord,
    TrafficTrendReport,
    month_key,
    utcnow,
)
from app.repositories.traffic_repository import UsageLogRepository
from app.scraping.browser import BrowserSessionManager
from app.scraping.config import TrafficScrapingSettings, get_traffic_scraping_settings
from app.scraping.domains import cache_key, is_valid_domain, normalize_domain, normalize_domains
from app.scraping.engine import TrafficScrapingEngine
from app.scraping.errors import EmptyDomainListError
from app.scraping.logging_utils import log_event
from app.scraping.orchestrator import BatchOrchestrator, OrchestrationResult
from app.scraping.retry import BackgroundRetryRunner, RetryController, RetryPolicy
from app.scraping.storage import SQLAlchemyTrafficStore, TrafficStore

logger = logging.getLogger(__name__)

BatchProcessor = Callable[[list[str]], Awaitable[list[TrafficRecord]]]


def _policy_from(settings: RetrySettings | BackgroundRetrySettings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=settings.max_retries,
        initial_delay_seconds=settings.initial_delay_seconds,
        max_delay_seconds=settings.max_delay_seconds,
        backoff_multiplier=settings.backoff_multiplier,
    )


class TrafficExtractionService:
    """
    Serves fresh snapshots from the store and extracts the rest.

    Cache misses go through the batch orchestrator, each sub-batch wrapped in
    the foreground retry controller with the batch timeout applied per
    attempt. Store calls run in a worker thread. Domains that still fail are handed to the
    background runner and the call returns without waiting for it.
    """

    def __init__(
        self,
        *,
        store: TrafficStore,
        process_batch: BatchProcessor,
        scraping_settings: TrafficScrapingSettings | None = None,
        retry_settings: RetrySettings | None = None,
        background_settings: BackgroundRetrySettings | None = None,
        usage_session_factory: Callable[[], Session] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._settings = scraping_settings or get_traffic_scraping_settings()
        retry_settings = retry_settings or get_retry_settings()
        background_settings = background_settings or get_background_retry_settings()
        self._usage_session_factory = usage_session_factory
        self._clock = clock

        controller = RetryController(
            process_batch,
            _policy_from(retry_settings),
            attempt_timeout_seconds=self._settings.batch_timeout_seconds,
            sleep=sleep,
        )
        self._orchestrator = BatchOrchestrator(
            controller.run,
            batch_size=self._settings.batch_size,
            parallel_batches=self._settings.parallel_batches,
            wave_delay_seconds=self._settings.batch_delay_seconds,
            batch_timeout_seconds=None,
            sleep=sleep,
            clock=clock,
        )
        self._background: BackgroundRetryRunner | None = None
        if background_settings.enabled:
            self._background = BackgroundRetryRunner(
                process_batch,
                store,
                batch_size=self._settings.batch_size,
                grace_seconds=background_settings.grace_seconds,
                policy=_policy_from(background_settings),
                attempt_timeout_seconds=self._settings.batch_timeout_seconds,
                sleep=sleep,
            )

    @property
    def store(self) -> TrafficStore:
        return self._store

    @property
    def background(self) -> BackgroundRetryRunner | None:
        return self._background

    async def extract(self, domains: Sequence[str], bypass_cache: bool = False) -> TrafficBatchResult:
        """
        Return one record per distinct valid input domain, in first-seen order.
        """

        requested = normalize_domains(domains)
        if not requested:
            raise EmptyDomainListError("No valid domains provided.")

        cached = {} if bypass_cache else await asyncio.to_thread(self._store.get_fresh_batch, requested)
        misses = [domain for domain in requested if domain not in cached]

        outcome = OrchestrationResult(records=[], batches_processed=0)
        if misses:
            outcome = await self._orchestrator.run(misses)
            await asyncio.to_thread(self._persist, outcome.records)

        scraped = {cache_key(record.domain): record for record in outcome.records}
        period = month_key(self._clock())
        results = [
            cached.get(domain)
            or scraped.get(cache_key(domain))
            or TrafficRecord.failed(domain, MISSING_RESULT_ERROR, month_year=period)
            for domain in requested
        ]

        await asyncio.to_thread(
            self._log_usage, results, cache_hits=len(cached), cache_misses=len(misses)
        )

        failed = [record.domain for record in outcome.records if not record.succeeded]
        background_retry = False
        if failed and self._background is not None:
            background_retry = self._background.schedule(failed) is not None

        metadata = TrafficBatchMetadata(
            total_domains=len(requested),
            batches_processed=outcome.batches_processed,
            cache_hits=len(cached),
            cache_misses=len(misses),
            errors=list(outcome.errors),
            background_retry=background_retry,
        )
        log_event(
            logger,
            logging.INFO,
            "traffic_extract_completed",
            domains=len(requested),
            cache_hits=metadata.cache_hits,
            cache_misses=metadata.cache_misses,
            failed=len(failed),
            background_retry=background_retry,
            bypass_cache=bypass_cache,
        )
        return TrafficBatchResult(results=results, metadata=metadata)

    def get_updates(self, domains: Sequence[str]) -> list[TrafficRecord]:
        """
        Latest stored row per domain, for polling after a background retry.
        Domains with no row yet come back as pending placeholders.
        """

        requested = normalize_domains(domains)
        if not requested:
            raise EmptyDomainListError("No valid domains provided.")

        latest = self._store.get_batch(requested)
        period = month_key(self._clock())
        return [
            latest.get(domain) or TrafficRecord.failed(domain, PENDING_RESULT_ERROR, month_year=period)
            for domain in requested
        ]

    def get_trends(self, domain: str, period: str = DEFAULT_TREND_PERIOD) -> TrafficTrendReport:
        normalized = normalize_domain(domain or "")
        if not is_valid_domain(normalized):
            raise EmptyDomainListError("A valid domain parameter is required.")

        if period not in TREND_PERIOD_MONTHS:
            period = DEFAULT_TREND_PERIOD
        return TrafficTrendReport(
            domain=normalized,
            period=period,
            historical=self._store.get_history(normalized, months=TREND_PERIOD_MONTHS[period]),
            trends=self._store.calculate_trends(normalized),
        )

    async def refresh_stale(self, limit: int) -> int:
        """
        Re-extract up to `limit` stale domains; returns how many succeeded.
        """

        stale = await asyncio.to_thread(self._store.get_stale_domains, limit=limit)
        if not stale:
            return 0
        result = await self.extract(stale, bypass_cache=True)
        return sum(1 for record in result.results if record.succeeded)

    async def shutdown(self) -> None:
        if self._background is not None:
            await self._background.shutdown()

    def _persist(self, records: Sequence[TrafficRecord]) -> None:
        try:
            self._store.save_many(records)
        except SQLAlchemyError as exc:
            log_event(
                logger,
                logging.ERROR,
                "traffic_persist_failed",
                records=len(records),
                error=str(exc),
            )

    def _log_usage(self, results: Sequence[TrafficRecord], *, cache_hits: int, cache_misses: int) -> None:
        if self._usage_session_factory is None:
            return
        try:
            with self._usage_scope() as session:
                UsageLogRepository(session).increment(
                    day=self._clock().date(),
                    rows=len(results),
                    errors=sum(1 for record in results if record.error),
                    visits=sum(record.monthly_visits or 0 for record in results),
                    cache_hits=cache_hits,
                    cache_misses=cache_misses,
                )
        except SQLAlchemyError as exc:
            log_event(logger, logging.WARNING, "traffic_usage_log_failed", error=str(exc))

    @contextmanager
    def _usage_scope(self) -> Iterator[Session]:
        session = self._usage_session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()


@lru_cache(maxsize=1)
def get_browser_sessions() -> BrowserSessionManager:
    """
    Build and cache the process-wide browser session manager.
    """

    return BrowserSessionManager(get_traffic_scraping_settings())


@lru_cache(maxsize=1)
def get_traffic_service() -> TrafficExtractionService:
    """
    Build and cache the traffic extraction service.
    """

    from db.session import SessionLocal

    engine = TrafficScrapingEngine(sessions=get_browser_sessions())
    return TrafficExtractionService(
        store=SQLAlchemyTrafficStore(session_factory=SessionLocal),
        process_batch=engine.scrape,
        usage_session_factory=SessionLocal,
    )
