"""
Retry with exponential backoff around one sub-batch, plus the detached
background runner that re-tries failed domains after a request returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from app.domain.traffic import TrafficRecord, month_key, utcnow
from app.scraping.domains import chunk
from app.scraping.errors import RenderTimeoutError, TrafficScrapeError
from app.scraping.logging_utils import domain_sample, log_event
from app.scraping.storage import TrafficStore

logger = logging.getLogger(__name__)

BatchProcessor = Callable[[list[str]], Awaitable[list[TrafficRecord]]]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff without jitter: ``initial * multiplier ** attempt``, capped.
    """

    max_retries: int = 3
    initial_delay_seconds: float = 5.0
    max_delay_seconds: float = 30.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return min(
            self.max_delay_seconds,
            self.initial_delay_seconds * (self.backoff_multiplier ** attempt),
        )


BACKGROUND_POLICY = RetryPolicy(
    max_retries=2,
    initial_delay_seconds=10.0,
    max_delay_seconds=60.0,
    backoff_multiplier=2.0,
)


def needs_retry(results: Sequence[TrafficRecord]) -> bool:
    """
    True when no record carries a metric. Confirmed zeros count as data.
    """

    return not results or not any(record.has_metrics for record in results)


class RetryController:
    """
    Re-runs a sub-batch while it yields no data or raises a scrape error.

    Each attempt gets its own `attempt_timeout_seconds`; an attempt that runs
    over is retried like any other scrape error.
    """

    def __init__(
        self,
        process_batch: BatchProcessor,
        policy: RetryPolicy | None = None,
        *,
        attempt_timeout_seconds: float | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._process_batch = process_batch
        self._policy = policy or RetryPolicy()
        self._attempt_timeout_seconds = attempt_timeout_seconds
        self._sleep = sleep

    async def run(self, domains: Sequence[str]) -> list[TrafficRecord]:
        batch = list(domains)
        last_results: list[TrafficRecord] = []
        last_error: TrafficScrapeError | None = None

        for attempt in range(self._policy.max_retries + 1):
            try:
                last_results = await self._attempt(batch)
                last_error = None
                if not needs_retry(last_results):
                    return last_results
                reason = "no metrics extracted"
            except TrafficScrapeError as exc:
                last_error = exc
                reason = str(exc)

            if attempt >= self._policy.max_retries:
                break
            delay = self._policy.delay_for(attempt)
            log_event(
                logger,
                logging.WARNING,
                "traffic_batch_retry",
                attempt=attempt + 1,
                max_retries=self._policy.max_retries,
                delay_seconds=delay,
                domains=len(batch),
                reason=reason,
            )
            await self._sleep(delay)

        if last_error is not None:
            period = month_key(utcnow())
            return [TrafficRecord.failed(domain, str(last_error), month_year=period) for domain in batch]
        return last_results

    async def _attempt(self, batch: list[str]) -> list[TrafficRecord]:
        if self._attempt_timeout_seconds is None:
            return list(await self._process_batch(batch))
        try:
            records = await asyncio.wait_for(
                self._process_batch(batch),
                timeout=self._attempt_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise RenderTimeoutError(
                f"Sub-batch attempt timed out after {self._attempt_timeout_seconds:g}s"
            ) from exc
        return list(records)


class BackgroundRetryRunner:
    """
    Retries failed domains off the request path and persists what recovers.

    Tasks run on the running event loop; callers never await them.
    """

    def __init__(
        self,
        process_batch: BatchProcessor,
        store: TrafficStore,
        *,
        batch_size: int,
        grace_seconds: float = 10.0,
        policy: RetryPolicy = BACKGROUND_POLICY,
        attempt_timeout_seconds: float | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._process_batch = process_batch
        self._store = store
        self._attempt_timeout_seconds = attempt_timeout_seconds
        self._batch_size = batch_size
        self._grace_seconds = grace_seconds
        self._policy = policy
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, domains: Sequence[str]) -> asyncio.Task | None:
        batch = list(domains)
        if not batch:
            return None
        task = asyncio.get_running_loop().create_task(self._run(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log_event(logger, logging.INFO, "traffic_background_retry_scheduled", domains=len(batch))
        return task

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, domains: list[str]) -> int:
        await self._sleep(self._grace_seconds)
        controller = RetryController(
            self._process_batch,
            self._policy,
            attempt_timeout_seconds=self._attempt_timeout_seconds,
            sleep=self._sleep,
        )

        recovered = 0
        for group in chunk(domains, self._batch_size):
            try:
                results = await controller.run(group)
            except Exception as exc:  # noqa: BLE001
                log_event(
                    logger,
                    logging.WARNING,
                    "traffic_background_retry_failed",
                    domains=domain_sample(group),
                    error=str(exc),
                )
                continue

            successes = [record for record in results if record.succeeded]
            if successes:
                await asyncio.to_thread(self._store.save_many, successes)
                recovered += len(successes)

        log_event(
            logger,
            logging.INFO,
            "traffic_background_retry_completed",
            domains=len(domains),
            recovered=recovered,
        )
        return recovered
