"""
SQLAlchemy-backed traffic snapshot store.

Every operation opens its own session from the factory so request handlers
and background tasks never share one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import CacheSettings, get_cache_settings
from app.domain.traffic import (
    TREND_PERIOD_MONTHS,
    TrafficRecord,
    TrafficTrend,
    month_key,
    shift_month_key,
    utcnow,
)
from app.repositories.traffic_repository import TrafficRepository
from app.scraping.domains import domain_variants
from app.scraping.freshness import ensure_utc, is_snapshot_fresh
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import TrafficStore
from db.models.traffic_latest import TrafficLatest
from db.models.traffic_snapshot import TrafficSnapshot

logger = logging.getLogger(__name__)

TREND_PERIODS = tuple(TREND_PERIOD_MONTHS.items())


class SQLAlchemyTrafficStore(TrafficStore):
    """
    Persist traffic records through the repository and short-lived sessions.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        settings: CacheSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_cache_settings()
        self._clock = clock

    @property
    def settings(self) -> CacheSettings:
        return self._settings

    def save(self, record: TrafficRecord) -> None:
        self.save_many([record])

    def save_many(self, records: Sequence[TrafficRecord]) -> int:
        if not records:
            return 0

        now = self._clock()
        with self._session_scope() as session:
            repository = TrafficRepository(session)
            for record in records:
                if record.succeeded:
                    repository.upsert_snapshot(record, now=now)
                    repository.upsert_latest(record, now=now)
                    repository.insert_history(
                        record.domain,
                        [month for month in record.history if month.month_year < record.month_year],
                        now=now,
                    )
                else:
                    repository.record_error(
                        record.domain,
                        record.error or "no metrics extracted",
                        month_year=record.month_year,
                        now=now,
                    )
        return len(records)

    def get_batch(self, domains: Sequence[str]) -> dict[str, TrafficRecord]:
        return self._latest_records(domains)

    def is_fresh(self, domain: str, max_age_days: int | None = None) -> bool:
        return domain in self.get_fresh_batch([domain], max_age_days=max_age_days)

    def get_fresh_batch(
        self,
        domains: Sequence[str],
        max_age_days: int | None = None,
    ) -> dict[str, TrafficRecord]:
        now = self._clock()
        fresh: dict[str, TrafficRecord] = {}
        for domain, record in self._latest_records(domains).items():
            if is_snapshot_fresh(
                record.month_year,
                record.checked_at,
                now=now,
                settings=self._settings,
                max_age_days=max_age_days,
            ):
                fresh[domain] = replace(record, error=None)
        return fresh

    def get_history(self, domain: str, months: int = 12) -> list[TrafficRecord]:
        with self._session_scope() as session:
            rows = TrafficRepository(session).get_history(
                list(domain_variants(domain)),
                months=max(1, months),
            )
            return [_snapshot_to_record(domain, row) for row in rows]

    def calculate_trends(self, domain: str) -> list[TrafficTrend]:
        history = self.get_history(domain, months=max(months for _, months in TREND_PERIODS))
        trends: list[TrafficTrend] = []
        for period, months in TREND_PERIODS:
            window = history[:months]
            if not window:
                continue
            visits = [record.monthly_visits for record in window if record.monthly_visits is not None]
            bounce = [record.bounce_rate for record in window if record.bounce_rate is not None]
            pages = [record.pages_per_visit for record in window if record.pages_per_visit is not None]
            trends.append(
                TrafficTrend(
                    period=period,
                    avg_monthly_visits=_mean(visits),
                    total_visits=sum(visits),
                    avg_bounce_rate=_mean(bounce),
                    avg_pages_per_visit=_mean(pages),
                    data_points=len(window),
                )
            )
        return trends

    def get_stale_domains(self, max_age_days: int | None = None, limit: int | None = None) -> list[str]:
        now = self._clock()
        with self._session_scope() as session:
            rows = TrafficRepository(session).list_latest()
            stale = [
                row.domain
                for row in rows
                if not is_snapshot_fresh(
                    row.month_year,
                    row.checked_at,
                    now=now,
                    settings=self._settings,
                    max_age_days=max_age_days,
                )
            ]
        return stale[:limit] if limit is not None else stale

    def prune(self, keep_months: int | None = None) -> int:
        keep = self._settings.retention_months if keep_months is None else max(1, keep_months)
        cutoff = shift_month_key(self._clock(), -keep)
        with self._session_scope() as session:
            removed = TrafficRepository(session).delete_snapshots_before(cutoff)
        log_event(
            logger,
            logging.INFO,
            "traffic_snapshots_pruned",
            cutoff_month=cutoff,
            current_month=month_key(self._clock()),
            removed=removed,
        )
        return removed

    def ping(self) -> bool:
        try:
            with self._session_scope() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log_event(logger, logging.WARNING, "traffic_store_unreachable", error=str(exc))
            return False
        return True

    def _latest_records(self, domains: Sequence[str]) -> dict[str, TrafficRecord]:
        """
        Latest row per requested domain, checking bare and ``www.`` keys and
        preferring the bare one. `error` carries the row's last error.
        """

        variants = {domain: domain_variants(domain) for domain in domains}
        keys = [key for pair in variants.values() for key in pair]
        resolved: dict[str, TrafficRecord] = {}
        with self._session_scope() as session:
            rows = TrafficRepository(session).get_latest(keys)
            for domain, (bare, www) in variants.items():
                row = rows.get(bare) or rows.get(www)
                if row is not None:
                    resolved[domain] = _latest_to_record(domain, row)
        return resolved

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _latest_to_record(domain: str, row: TrafficLatest) -> TrafficRecord:
    return TrafficRecord(
        domain=domain,
        month_year=row.month_year,
        monthly_visits=row.monthly_visits,
        avg_session_duration_seconds=row.avg_session_duration_seconds,
        bounce_rate=row.bounce_rate,
        pages_per_visit=row.pages_per_visit,
        growth_rate=row.growth_rate,
        checked_at=ensure_utc(row.checked_at) if row.checked_at else None,
        error=row.last_error,
    )


def _snapshot_to_record(domain: str, row: TrafficSnapshot) -> TrafficRecord:
    return TrafficRecord(
        domain=domain,
        month_year=row.month_year,
        monthly_visits=row.monthly_visits,
        avg_session_duration_seconds=row.avg_session_duration_seconds,
        bounce_rate=row.bounce_rate,
        pages_per_visit=row.pages_per_visit,
        growth_rate=row.growth_rate,
        checked_at=ensure_utc(row.checked_at),
    )
