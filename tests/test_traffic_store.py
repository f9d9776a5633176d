"""
tests/test_traffic_store.py

Pytest tests for snapshot freshness rules and the SQLAlchemy traffic store.

The store runs against in-memory SQLite; freshness rules are pure functions.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from app.config import CacheSettings
from app.domain.traffic import HistoricalMonth, TrafficRecord, month_key, shift_month_key
from app.repositories.traffic_repository import UsageLogRepository
from app.scraping.freshness import ensure_utc, is_snapshot_fresh
from app.scraping.storage import SQLAlchemyTrafficStore

SETTINGS = CacheSettings(cutoff_day=12, max_age_days=30, previous_month_max_age_days=45)


def _record(domain: str, month_year: str, checked_at: datetime, visits: int = 1000) -> TrafficRecord:
    return TrafficRecord(
        domain=domain,
        month_year=month_year,
        monthly_visits=visits,
        avg_session_duration_seconds=120,
        bounce_rate=40.0,
        pages_per_visit=2.5,
        checked_at=checked_at,
    )


@pytest.fixture()
def store(session_factory: sessionmaker, now: datetime) -> SQLAlchemyTrafficStore:
    return SQLAlchemyTrafficStore(session_factory=session_factory, settings=SETTINGS, clock=lambda: now)


# ---------------------------------------------------------------------------
# Freshness rules
# ---------------------------------------------------------------------------


class TestSnapshotFreshness:
    """Previous-month snapshots are served only before the cutoff day."""

    def test_previous_month_fresh_before_cutoff(self) -> None:
        now = datetime(2026, 3, 5, tzinfo=timezone.utc)
        checked = datetime(2026, 2, 20, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-02", checked, now=now, settings=SETTINGS) is True

    def test_previous_month_stale_after_cutoff(self) -> None:
        now = datetime(2026, 3, 20, tzinfo=timezone.utc)
        checked = datetime(2026, 2, 20, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-02", checked, now=now, settings=SETTINGS) is False

    def test_current_month_fresh_after_cutoff(self) -> None:
        now = datetime(2026, 3, 20, tzinfo=timezone.utc)
        checked = datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-03", checked, now=now, settings=SETTINGS) is True

    def test_current_month_respects_max_age_override(self) -> None:
        now = datetime(2026, 3, 20, tzinfo=timezone.utc)
        checked = datetime(2026, 3, 2, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-03", checked, now=now, settings=SETTINGS, max_age_days=7) is False

    def test_older_months_are_never_fresh(self) -> None:
        now = datetime(2026, 3, 5, tzinfo=timezone.utc)
        checked = datetime(2026, 1, 30, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-01", checked, now=now, settings=SETTINGS) is False

    def test_previous_month_wraps_year(self) -> None:
        now = datetime(2026, 1, 3, tzinfo=timezone.utc)
        checked = datetime(2025, 12, 28, tzinfo=timezone.utc)
        assert shift_month_key(now, -1) == "2025-12"
        assert is_snapshot_fresh("2025-12", checked, now=now, settings=SETTINGS) is True

    def test_never_checked_is_stale(self) -> None:
        now = datetime(2026, 3, 5, tzinfo=timezone.utc)
        assert is_snapshot_fresh("2026-03", None, now=now, settings=SETTINGS) is False

    def test_naive_timestamps_are_utc(self) -> None:
        assert ensure_utc(datetime(2026, 3, 5)).tzinfo == timezone.utc


# ---------------------------------------------------------------------------
# Save / read
# ---------------------------------------------------------------------------


class TestStoreReads:
    def test_saved_record_is_fresh(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("example.com", month_key(now), now))

        fresh = store.get_fresh_batch(["example.com"])
        assert fresh["example.com"].monthly_visits == 1000
        assert store.is_fresh("example.com") is True

    def test_www_request_hits_bare_snapshot(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("www.example.com", month_key(now), now))

        fresh = store.get_fresh_batch(["example.com", "www.example.com"])
        assert set(fresh) == {"example.com", "www.example.com"}
        assert fresh["www.example.com"].domain == "www.example.com"

    def test_unknown_domain_is_absent(self, store: SQLAlchemyTrafficStore) -> None:
        assert store.get_fresh_batch(["nobody.org"]) == {}
        assert store.get_batch(["nobody.org"]) == {}

    def test_stale_snapshot_is_not_served(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        old = now - timedelta(days=60)
        store.save(_record("old.com", month_key(old), old))

        assert store.get_fresh_batch(["old.com"]) == {}
        assert "old.com" in store.get_batch(["old.com"])

    def test_upsert_replaces_same_month(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("example.com", month_key(now), now, visits=10))
        store.save(_record("example.com", month_key(now), now, visits=0))

        assert store.get_fresh_batch(["example.com"])["example.com"].monthly_visits == 0
        assert len(store.get_history("example.com")) == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestStoreFailures:
    def test_failure_keeps_previous_metrics(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("example.com", month_key(now), now))
        store.save(TrafficRecord.failed("example.com", "upstream timed out", month_year=month_key(now)))

        latest = store.get_batch(["example.com"])["example.com"]
        assert latest.monthly_visits == 1000
        assert latest.error == "upstream timed out"

        fresh = store.get_fresh_batch(["example.com"])["example.com"]
        assert fresh.error is None

    def test_failure_for_new_domain_is_not_fresh(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(TrafficRecord.failed("new.io", "domain not found in results", month_year=month_key(now)))

        latest = store.get_batch(["new.io"])["new.io"]
        assert latest.monthly_visits is None
        assert latest.checked_at is None
        assert latest.error == "domain not found in results"
        assert store.get_fresh_batch(["new.io"]) == {}

    def test_success_clears_last_error(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(TrafficRecord.failed("example.com", "boom", month_year=month_key(now)))
        store.save(_record("example.com", month_key(now), now))

        assert store.get_batch(["example.com"])["example.com"].error is None


# ---------------------------------------------------------------------------
# History, trends, staleness and pruning
# ---------------------------------------------------------------------------


class TestStoreHistory:
    def _seed_months(self, store: SQLAlchemyTrafficStore, now: datetime, visits: list[int]) -> None:
        for offset, value in enumerate(visits):
            month = shift_month_key(now, -offset)
            store.save(_record("example.com", month, now - timedelta(days=31 * offset), visits=value))

    def test_history_is_most_recent_first(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        self._seed_months(store, now, [300, 200, 100])

        history = store.get_history("www.example.com", months=2)
        assert [record.month_year for record in history] == ["2026-10", "2026-09"]

    def test_trends_average_trailing_months(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        self._seed_months(store, now, [300, 200, 100])

        trends = {trend.period: trend for trend in store.calculate_trends("example.com")}
        assert trends["1m"].avg_monthly_visits == 300
        assert trends["3m"].avg_monthly_visits == 200
        assert trends["3m"].total_visits == 600
        assert trends["12m"].data_points == 3
        assert trends["3m"].avg_bounce_rate == 40.0

    def test_graph_months_backfill_past_snapshots_only(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("example.com", "2026-08", now - timedelta(days=60), visits=777))
        graph = (
            HistoricalMonth("2026-10", 999),
            HistoricalMonth("2026-09", 500),
            HistoricalMonth("2026-08", 400),
        )
        store.save(replace(_record("example.com", "2026-10", now, visits=1000), history=graph))

        history = store.get_history("example.com")
        assert [(record.month_year, record.monthly_visits) for record in history] == [
            ("2026-10", 1000),
            ("2026-09", 500),
            ("2026-08", 777),
        ]

    def test_scrape_overwrites_backfilled_month(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(replace(_record("example.com", "2026-10", now), history=(HistoricalMonth("2026-09", 500),)))
        store.save(_record("example.com", "2026-09", now, visits=650))

        history = store.get_history("example.com", months=2)
        assert history[1].month_year == "2026-09"
        assert history[1].monthly_visits == 650
        assert history[1].bounce_rate == 40.0

    def test_growth_rate_round_trips(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(replace(_record("example.com", month_key(now), now), growth_rate=-12.5))

        assert store.get_batch(["example.com"])["example.com"].growth_rate == -12.5
        assert store.get_history("example.com")[0].growth_rate == -12.5

    def test_no_history_means_no_trends(self, store: SQLAlchemyTrafficStore) -> None:
        assert store.calculate_trends("nobody.org") == []

    def test_stale_domains(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("fresh.com", month_key(now), now))
        old = now - timedelta(days=90)
        store.save(_record("stale.com", month_key(old), old))

        assert store.get_stale_domains() == ["stale.com"]
        assert store.get_stale_domains(limit=0) == []

    def test_prune_drops_snapshots_outside_retention(self, store: SQLAlchemyTrafficStore, now: datetime) -> None:
        store.save(_record("example.com", "2023-01", datetime(2023, 1, 15, tzinfo=timezone.utc)))
        store.save(_record("example.com", month_key(now), now))

        assert store.prune(keep_months=24) == 1
        assert [record.month_year for record in store.get_history("example.com")] == [month_key(now)]

    def test_ping(self, store: SQLAlchemyTrafficStore) -> None:
        assert store.ping() is True


# ---------------------------------------------------------------------------
# Usage log
# ---------------------------------------------------------------------------


class TestUsageLogRepository:
    def test_increments_accumulate_per_day(self, session_factory: sessionmaker, now: datetime) -> None:
        for _ in range(2):
            with session_factory() as session:
                UsageLogRepository(session).increment(
                    day=now.date(),
                    rows=3,
                    errors=1,
                    visits=500,
                    cache_hits=2,
                    cache_misses=1,
                )
                session.commit()

        with session_factory() as session:
            row = UsageLogRepository(session).get(now.date())
            assert row is not None
            assert row.total_rows == 6
            assert row.total_errors == 2
            assert row.total_visits == 1000
            assert row.cache_hits == 4
