"""
app/repositories/traffic_repository.py

Persistence layer for traffic snapshots, the latest projection and usage logs.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.domain.traffic import HistoricalMonth, TrafficRecord
from app.scraping.domains import cache_key
from db.models.traffic_latest import TrafficLatest
from db.models.traffic_snapshot import DEFAULT_SOURCE, HISTORY_SOURCE, TrafficSnapshot
from db.models.usage_log import UsageLog

_METRIC_COLUMNS = (
    "monthly_visits",
    "avg_session_duration_seconds",
    "bounce_rate",
    "pages_per_visit",
    "growth_rate",
)


def _insert_for(session: Session, model: Any) -> Any:
    """
    Dialect-specific INSERT supporting ON CONFLICT DO UPDATE.
    """

    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


class TrafficRepository:
    """
    Single-row upserts and lookups for traffic tables.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_snapshot(self, record: TrafficRecord, *, now: dt.datetime) -> None:
        payload: dict[str, Any] = {
            "domain": cache_key(record.domain),
            "month_year": record.month_year,
            "checked_at": record.checked_at or now,
            "source": DEFAULT_SOURCE,
            **{column: getattr(record, column) for column in _METRIC_COLUMNS},
        }
        stmt = _insert_for(self._session, TrafficSnapshot).values(**payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=["domain", "month_year"],
            set_={
                "checked_at": stmt.excluded.checked_at,
                "updated_at": now,
                "source": stmt.excluded.source,
                **{column: getattr(stmt.excluded, column) for column in _METRIC_COLUMNS},
            },
        )
        self._session.execute(stmt)

    def upsert_latest(self, record: TrafficRecord, *, now: dt.datetime) -> None:
        payload: dict[str, Any] = {
            "domain": cache_key(record.domain),
            "month_year": record.month_year,
            "checked_at": record.checked_at or now,
            "last_error": None,
            **{column: getattr(record, column) for column in _METRIC_COLUMNS},
        }
        stmt = _insert_for(self._session, TrafficLatest).values(**payload)
        stmt = stmt.on_conflict_do_update(
            index_elements=["domain"],
            set_={
                "month_year": stmt.excluded.month_year,
                "checked_at": stmt.excluded.checked_at,
                "last_error": None,
                "updated_at": now,
                **{column: getattr(stmt.excluded, column) for column in _METRIC_COLUMNS},
            },
        )
        self._session.execute(stmt)

    def record_error(self, domain: str, error: str, *, month_year: str, now: dt.datetime) -> None:
        """
        Set `last_error` without touching metrics; creates a metric-less row
        for domains never extracted before.
        """

        stmt = _insert_for(self._session, TrafficLatest).values(
            domain=cache_key(domain),
            month_year=month_year,
            checked_at=None,
            last_error=error,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["domain"],
            set_={"last_error": stmt.excluded.last_error, "updated_at": now},
        )
        self._session.execute(stmt)

    def insert_history(
        self,
        domain: str,
        months: Sequence[HistoricalMonth],
        *,
        now: dt.datetime,
    ) -> int:
        """
        Backfill past-month snapshots read off the visits graph.

        Existing snapshots always win: a month already stored, whether scraped
        or backfilled earlier, is left untouched.
        """

        if not months:
            return 0
        stmt = _insert_for(self._session, TrafficSnapshot).values(
            [
                {
                    "domain": cache_key(domain),
                    "month_year": month.month_year,
                    "monthly_visits": month.monthly_visits,
                    "checked_at": now,
                    "source": HISTORY_SOURCE,
                }
                for month in months
            ]
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["domain", "month_year"])
        result = self._session.execute(stmt)
        return int(result.rowcount or 0)

    def get_latest(self, keys: Sequence[str]) -> dict[str, TrafficLatest]:
        if not keys:
            return {}
        rows = self._session.scalars(
            select(TrafficLatest).where(TrafficLatest.domain.in_(list(set(keys))))
        ).all()
        return {row.domain: row for row in rows}

    def list_latest(self) -> list[TrafficLatest]:
        return list(
            self._session.scalars(select(TrafficLatest).order_by(TrafficLatest.checked_at)).all()
        )

    def get_history(self, keys: Sequence[str], *, months: int) -> list[TrafficSnapshot]:
        """
        Most recent snapshots first, at most one per month, up to `months` rows.
        """

        rows = self._session.scalars(
            select(TrafficSnapshot)
            .where(TrafficSnapshot.domain.in_(list(set(keys))))
            .order_by(TrafficSnapshot.month_year.desc(), TrafficSnapshot.checked_at.desc())
        ).all()

        history: list[TrafficSnapshot] = []
        seen: set[str] = set()
        for row in rows:
            if row.month_year in seen:
                continue
            seen.add(row.month_year)
            history.append(row)
            if len(history) >= months:
                break
        return history

    def delete_snapshots_before(self, month_year: str) -> int:
        result = self._session.execute(
            delete(TrafficSnapshot).where(TrafficSnapshot.month_year < month_year)
        )
        return int(result.rowcount or 0)


class UsageLogRepository:
    """
    Daily usage counters, incremented atomically per batch call.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def increment(
        self,
        *,
        day: dt.date,
        rows: int,
        errors: int,
        visits: int,
        cache_hits: int,
        cache_misses: int,
    ) -> None:
        stmt = _insert_for(self._session, UsageLog).values(
            date=day,
            total_rows=rows,
            total_errors=errors,
            total_visits=visits,
            cache_hits=cache_hits,
            cache_misses=cache_misses,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"],
            set_={
                "total_rows": UsageLog.total_rows + stmt.excluded.total_rows,
                "total_errors": UsageLog.total_errors + stmt.excluded.total_errors,
                "total_visits": UsageLog.total_visits + stmt.excluded.total_visits,
                "cache_hits": UsageLog.cache_hits + stmt.excluded.cache_hits,
                "cache_misses": UsageLog.cache_misses + stmt.excluded.cache_misses,
            },
        )
        self._session.execute(stmt)

    def get(self, day: dt.date) -> UsageLog | None:
        return self._session.scalars(select(UsageLog).where(UsageLog.date == day)).first()
