"""
app/domain/traffic.py

Domain models for traffic extraction and caching.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

DOMAIN_NOT_FOUND_ERROR = "domain not found in results"
MISSING_RESULT_ERROR = "no result returned for domain"
PENDING_RESULT_ERROR = "still scraping"


def month_key(value: datetime) -> str:
    """
    Return the YYYY-MM snapshot period for a timestamp.
    """

    return f"{value.year:04d}-{value.month:02d}"


def shift_month_key(value: datetime, months: int) -> str:
    """
    Return the YYYY-MM period `months` calendar months away from `value`.
    """

    index = value.year * 12 + (value.month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, order=True)
class HistoricalMonth:
    """
    Visits for one past month read off the upstream "Visits Over Time" graph.
    """

    month_year: str
    monthly_visits: int


@dataclass(frozen=True)
class TrafficRecord:
    """
    One domain's traffic metrics for one snapshot month.

    `monthly_visits=None` means unknown; `0` is a confirmed zero.
    `growth_rate` is the signed month-over-month change in percent and
    `history` holds past months shown alongside the current figures.
    """

    domain: str
    month_year: str
    monthly_visits: int | None = None
    avg_session_duration_seconds: int | None = None
    bounce_rate: float | None = None
    pages_per_visit: float | None = None
    checked_at: datetime | None = None
    error: str | None = None
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

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.has_metrics

    @property
    def avg_session_duration(self) -> str | None:
        if self.avg_session_duration_seconds is None:
            return None
        seconds = self.avg_session_duration_seconds
        return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"

    @classmethod
    def failed(cls, domain: str, error: str, *, month_year: str) -> "TrafficRecord":
        return cls(domain=domain, month_year=month_year, error=error)


@dataclass(frozen=True)
class TrafficBatchMetadata:
    """
    Bookkeeping returned alongside one batch extraction call.
    """

    total_domains: int
    batches_processed: int
    cache_hits: int
    cache_misses: int
    errors: list[str] = field(default_factory=list)
    background_retry: bool = False


@dataclass(frozen=True)
class TrafficBatchResult:
    """
    Ordered results plus metadata for one batch extraction call.
    """

    results: list[TrafficRecord]
    metadata: TrafficBatchMetadata


@dataclass(frozen=True)
class TrafficTrend:
    """
    Aggregated snapshot metrics over a trailing window of months.
    """

    period: str
    avg_monthly_visits: float
    total_visits: int
    avg_bounce_rate: float
    avg_pages_per_visit: float
    data_points: int


@dataclass(frozen=True)
class TrafficTrendReport:
    """
    Snapshot history of one domain with its trailing-window aggregates.
    """

    domain: str
    period: str
    historical: list[TrafficRecord]
    trends: list[TrafficTrend]


TREND_PERIOD_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "12m": 12}
DEFAULT_TREND_PERIOD = "12m"
