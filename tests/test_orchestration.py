"""
tests/test_orchestration.py

Pytest tests for batch scheduling, foreground retry and background retry.

Async code is driven with ``asyncio.run``; backoff sleeps are recorded, never
awaited for real. Timeout tests use short real waits inside the batch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone

import pytest

from app.domain.traffic import TrafficRecord
from app.scraping.errors import UpstreamUnavailableError
from app.scraping.orchestrator import BatchOrchestrator
from app.scraping.retry import (
    BackgroundRetryRunner,
    RetryController,
    RetryPolicy,
    needs_retry,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _ok(domain: str, visits: int = 100) -> TrafficRecord:
    return TrafficRecord(domain=domain, month_year="2026-10", monthly_visits=visits, checked_at=NOW)


class SleepRecorder:
    """Stand-in for asyncio.sleep that only records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class ScriptedBatch:
    """
    Async batch processor whose behavior per call is scripted up front.
    Each script entry is a list of records to return or an exception to raise.
    """

    def __init__(self, script: Sequence[object]) -> None:
        self._script = list(script)
        self.calls: list[list[str]] = []

    async def __call__(self, domains: list[str]) -> list[TrafficRecord]:
        self.calls.append(list(domains))
        step = self._script[min(len(self.calls), len(self._script)) - 1]
        if isinstance(step, Exception):
            raise step
        return step(domains) if callable(step) else list(step)


class SlowBatch:
    """Hangs for `delay` seconds on the first `slow_calls` calls, then succeeds."""

    def __init__(self, slow_calls: int, delay: float) -> None:
        self._slow_calls = slow_calls
        self._delay = delay
        self.calls = 0

    async def __call__(self, domains: list[str]) -> list[TrafficRecord]:
        self.calls += 1
        if self.calls <= self._slow_calls:
            await asyncio.sleep(self._delay)
        return [_ok(domain) for domain in domains]


class FakeStore:
    def __init__(self) -> None:
        self.saved: list[TrafficRecord] = []

    def save_many(self, records: Sequence[TrafficRecord]) -> int:
        self.saved.extend(records)
        return len(records)


# ---------------------------------------------------------------------------
# BatchOrchestrator
# ---------------------------------------------------------------------------


class TestBatchOrchestrator:
    def test_output_follows_deduplicated_input_order(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            return [_ok(domain) for domain in reversed(batch)]

        orchestrator = BatchOrchestrator(process, sleep=SleepRecorder(), clock=lambda: NOW)
        result = asyncio.run(orchestrator.run(["b.com", "a.com", "b.com"]))

        assert [record.domain for record in result.records] == ["b.com", "a.com"]
        assert result.batches_processed == 1

    def test_waves_are_bounded_and_delayed(self) -> None:
        seen: list[list[str]] = []

        async def process(batch: list[str]) -> list[TrafficRecord]:
            seen.append(batch)
            return [_ok(domain) for domain in batch]

        sleep = SleepRecorder()
        orchestrator = BatchOrchestrator(
            process,
            batch_size=2,
            parallel_batches=2,
            wave_delay_seconds=2.0,
            sleep=sleep,
            clock=lambda: NOW,
        )
        domains = [f"site{index}.com" for index in range(5)]
        result = asyncio.run(orchestrator.run(domains))

        assert result.batches_processed == 3
        assert sorted(len(batch) for batch in seen) == [1, 2, 2]
        assert sleep.delays == [2.0]
        assert [record.domain for record in result.records] == domains

    def test_failing_sub_batch_leaves_siblings_intact(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            if "bad.com" in batch:
                raise UpstreamUnavailableError("navigation failed")
            return [_ok(domain) for domain in batch]

        orchestrator = BatchOrchestrator(process, batch_size=2, sleep=SleepRecorder(), clock=lambda: NOW)
        result = asyncio.run(orchestrator.run(["a.com", "b.com", "bad.com", "c.com", "d.com"]))
        records = {record.domain: record for record in result.records}

        assert records["a.com"].monthly_visits == 100
        assert records["d.com"].monthly_visits == 100
        assert records["bad.com"].error == "navigation failed"
        assert records["c.com"].error == "navigation failed"
        assert result.errors == ["navigation failed"]

    def test_slow_sub_batch_times_out(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            if "slow.com" in batch:
                await asyncio.sleep(5)
            return [_ok(domain) for domain in batch]

        orchestrator = BatchOrchestrator(
            process,
            batch_size=1,
            batch_timeout_seconds=0.05,
            sleep=SleepRecorder(),
            clock=lambda: NOW,
        )
        result = asyncio.run(orchestrator.run(["slow.com", "fast.com"]))

        assert result.records[0].error is not None
        assert "timed out" in result.records[0].error
        assert result.records[1].succeeded

    def test_missing_domain_gets_error_record(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            return [_ok(batch[0])]

        orchestrator = BatchOrchestrator(process, sleep=SleepRecorder(), clock=lambda: NOW)
        result = asyncio.run(orchestrator.run(["a.com", "b.com"]))

        assert result.records[1].error == "no result returned for domain"
        assert result.records[1].month_year == "2026-10"

    def test_www_result_matches_bare_request(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            return [_ok("www.example.com")]

        orchestrator = BatchOrchestrator(process, sleep=SleepRecorder(), clock=lambda: NOW)
        result = asyncio.run(orchestrator.run(["example.com"]))
        assert result.records[0].succeeded

    def test_empty_input(self) -> None:
        orchestrator = BatchOrchestrator(ScriptedBatch([[]]), sleep=SleepRecorder())
        result = asyncio.run(orchestrator.run([]))
        assert result.records == []
        assert result.batches_processed == 0

    @pytest.mark.parametrize("batch_size", [0, 11])
    def test_rejects_batch_size_outside_upstream_limit(self, batch_size: int) -> None:
        with pytest.raises(ValueError):
            BatchOrchestrator(ScriptedBatch([[]]), batch_size=batch_size)


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


class TestRetryPolicy:
    def test_exponential_delays_are_capped(self) -> None:
        policy = RetryPolicy()
        assert [policy.delay_for(attempt) for attempt in range(4)] == [5.0, 10.0, 20.0, 30.0]

    def test_confirmed_zero_counts_as_data(self) -> None:
        assert needs_retry([_ok("a.com", visits=0)]) is False

    def test_empty_or_metricless_results_need_retry(self) -> None:
        assert needs_retry([]) is True
        assert needs_retry([TrafficRecord.failed("a.com", "boom", month_year="2026-10")]) is True


# ---------------------------------------------------------------------------
# RetryController
# ---------------------------------------------------------------------------


class TestRetryController:
    def test_returns_first_useful_attempt(self) -> None:
        batch = ScriptedBatch([[], UpstreamUnavailableError("down"), lambda d: [_ok(x) for x in d]])
        sleep = SleepRecorder()
        results = asyncio.run(RetryController(batch, sleep=sleep).run(["a.com"]))

        assert results[0].succeeded
        assert len(batch.calls) == 3
        assert sleep.delays == [5.0, 10.0]

    def test_exhaustion_after_exception_yields_error_records(self) -> None:
        batch = ScriptedBatch([UpstreamUnavailableError("upstream down")])
        sleep = SleepRecorder()
        results = asyncio.run(RetryController(batch, sleep=sleep).run(["a.com", "b.com"]))

        assert len(batch.calls) == 4
        assert sleep.delays == [5.0, 10.0, 20.0]
        assert [record.error for record in results] == ["upstream down", "upstream down"]

    def test_exhaustion_returns_last_results(self) -> None:
        failed = [TrafficRecord.failed("a.com", "domain not found in results", month_year="2026-10")]
        batch = ScriptedBatch([failed])
        results = asyncio.run(
            RetryController(batch, RetryPolicy(max_retries=1), sleep=SleepRecorder()).run(["a.com"])
        )
        assert results == failed

    def test_unexpected_exceptions_propagate(self) -> None:
        batch = ScriptedBatch([KeyError("bug")])
        with pytest.raises(KeyError):
            asyncio.run(RetryController(batch, sleep=SleepRecorder()).run(["a.com"]))

    def test_slow_attempt_is_retried(self) -> None:
        batch = SlowBatch(slow_calls=1, delay=1.0)
        sleep = SleepRecorder()
        controller = RetryController(batch, attempt_timeout_seconds=0.05, sleep=sleep)

        results = asyncio.run(controller.run(["a.com"]))

        assert results[0].succeeded
        assert batch.calls == 2
        assert sleep.delays == [5.0]

    def test_every_attempt_timing_out_yields_timeout_errors(self) -> None:
        batch = SlowBatch(slow_calls=10, delay=1.0)
        controller = RetryController(
            batch,
            RetryPolicy(max_retries=1),
            attempt_timeout_seconds=0.05,
            sleep=SleepRecorder(),
        )

        results = asyncio.run(controller.run(["a.com"]))

        assert batch.calls == 2
        assert results[0].error == "Sub-batch attempt timed out after 0.05s"

    def test_timeout_applies_per_attempt_not_per_run(self) -> None:
        async def not_found(batch: list[str]) -> list[TrafficRecord]:
            await asyncio.sleep(0.02)
            return [TrafficRecord.failed(d, "domain not found in results", month_year="2026-10") for d in batch]

        controller = RetryController(
            not_found,
            RetryPolicy(max_retries=3),
            attempt_timeout_seconds=0.05,
            sleep=SleepRecorder(),
        )

        results = asyncio.run(controller.run(["a.com"]))

        assert results[0].error == "domain not found in results"


# ---------------------------------------------------------------------------
# BackgroundRetryRunner
# ---------------------------------------------------------------------------


class TestBackgroundRetryRunner:
    def test_persists_only_recovered_domains(self) -> None:
        async def process(batch: list[str]) -> list[TrafficRecord]:
            return [
                _ok(domain) if domain != "gone.com"
                else TrafficRecord.failed(domain, "domain not found in results", month_year="2026-10")
                for domain in batch
            ]

        store = FakeStore()
        sleep = SleepRecorder()

        async def scenario() -> int:
            runner = BackgroundRetryRunner(
                process,
                store,
                batch_size=2,
                grace_seconds=10.0,
                policy=RetryPolicy(max_retries=0),
                sleep=sleep,
            )
            task = runner.schedule(["a.com", "gone.com", "b.com"])
            assert task is not None
            return await task

        recovered = asyncio.run(scenario())

        assert recovered == 2
        assert sorted(record.domain for record in store.saved) == ["a.com", "b.com"]
        assert sleep.delays[0] == 10.0

    def test_nothing_to_schedule(self) -> None:
        async def scenario() -> object:
            runner = BackgroundRetryRunner(ScriptedBatch([[]]), FakeStore(), batch_size=10)
            return runner.schedule([])

        assert asyncio.run(scenario()) is None

    def test_shutdown_cancels_pending_tasks(self) -> None:
        async def scenario() -> tuple[int, int]:
            runner = BackgroundRetryRunner(
                ScriptedBatch([[]]),
                FakeStore(),
                batch_size=10,
                grace_seconds=60.0,
            )
            runner.schedule(["a.com"])
            before = runner.pending
            await runner.shutdown()
            await asyncio.sleep(0)
            return before, runner.pending

        assert asyncio.run(scenario()) == (1, 0)
