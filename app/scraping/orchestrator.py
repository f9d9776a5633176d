"""
Bounded-parallel batch scheduling over the upstream's ten-domain limit.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from app.domain.traffic import MISSING_RESULT_ERROR, TrafficRecord, month_key, utcnow
from app.scraping.config import UPSTREAM_BATCH_LIMIT
from app.scraping.domains import cache_key, chunk, dedupe
from app.scraping.logging_utils import domain_sample, log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestrationResult:
    records: list[TrafficRecord]
    batches_processed: int
    errors: list[str] = field(default_factory=list)


class BatchOrchestrator:
    """
    Splits domains into sub-batches and runs them in waves.

    At most `parallel_batches` sub-batches run at once and waves are separated
    by `wave_delay_seconds`. A failing or slow sub-batch turns into error
    records for its own domains only. `batch_timeout_seconds=None` leaves
    timing to `process_batch`.
    """

    def __init__(
        self,
        process_batch: Callable[[list[str]], Awaitable[list[TrafficRecord]]],
        *,
        batch_size: int = UPSTREAM_BATCH_LIMIT,
        parallel_batches: int = 5,
        wave_delay_seconds: float = 2.0,
        batch_timeout_seconds: float | None = 90.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not 1 <= batch_size <= UPSTREAM_BATCH_LIMIT:
            raise ValueError(f"batch_size must be between 1 and {UPSTREAM_BATCH_LIMIT}.")
        if parallel_batches < 1:
            raise ValueError("parallel_batches must be at least 1.")
        self._process_batch = process_batch
        self._batch_size = batch_size
        self._parallel_batches = parallel_batches
        self._wave_delay_seconds = wave_delay_seconds
        self._batch_timeout_seconds = batch_timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def run(self, domains: Sequence[str]) -> OrchestrationResult:
        requested = dedupe(domains)
        if not requested:
            return OrchestrationResult(records=[], batches_processed=0)

        batches = chunk(requested, self._batch_size)
        waves = chunk(batches, self._parallel_batches)
        collected: list[TrafficRecord] = []
        errors: list[str] = []

        for index, wave in enumerate(waves):
            outcomes = await asyncio.gather(*(self._run_batch(batch) for batch in wave))
            for records, error in outcomes:
                collected.extend(records)
                if error is not None:
                    errors.append(error)
            if index < len(waves) - 1 and self._wave_delay_seconds > 0:
                await self._sleep(self._wave_delay_seconds)

        by_key: dict[str, TrafficRecord] = {}
        for record in collected:
            by_key.setdefault(cache_key(record.domain), record)

        period = month_key(self._clock())
        ordered = [
            by_key.get(cache_key(domain))
            or TrafficRecord.failed(domain, MISSING_RESULT_ERROR, month_year=period)
            for domain in requested
        ]
        log_event(
            logger,
            logging.INFO,
            "traffic_orchestration_completed",
            domains=len(requested),
            batches=len(batches),
            waves=len(waves),
            failed_batches=len(errors),
        )
        return OrchestrationResult(records=ordered, batches_processed=len(batches), errors=errors)

    async def _run_batch(self, batch: list[str]) -> tuple[list[TrafficRecord], str | None]:
        try:
            records = await asyncio.wait_for(
                self._process_batch(batch),
                timeout=self._batch_timeout_seconds,
            )
            return list(records), None
        except asyncio.TimeoutError:
            message = f"Sub-batch timed out after {self._batch_timeout_seconds:g}s"
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__

        log_event(
            logger,
            logging.ERROR,
            "traffic_batch_failed",
            domains=domain_sample(batch),
            error=message,
        )
        period = month_key(self._clock())
        return [TrafficRecord.failed(domain, message, month_year=period) for domain in batch], message
