"""
app/schemas/traffic.py

Request and response schemas for traffic extraction endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.traffic import TrafficBatchMetadata, TrafficRecord, TrafficTrend, TrafficTrendReport


class CamelModel(BaseModel):
    """
    Base model serialized with camelCase keys; snake_case is accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class TrafficExtractRequest(CamelModel):
    domains: list[str] = Field(default_factory=list)
    bypass_cache: bool = False


class TrafficRecordResponse(CamelModel):
    """
    One domain's metrics. `monthly_visits=0` is a confirmed zero; `None` is unknown.
    """

    domain: str
    month_year: str
    monthly_visits: int | None = None
    avg_session_duration: str | None = None
    avg_session_duration_seconds: int | None = None
    bounce_rate: float | None = None
    pages_per_visit: float | None = None
    growth_rate: float | None = None
    checked_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_record(cls, record: TrafficRecord) -> "TrafficRecordResponse":
        return cls(
            domain=record.domain,
            month_year=record.month_year,
            monthly_visits=record.monthly_visits,
            avg_session_duration=record.avg_session_duration,
            avg_session_duration_seconds=record.avg_session_duration_seconds,
            bounce_rate=record.bounce_rate,
            pages_per_visit=record.pages_per_visit,
            growth_rate=record.growth_rate,
            checked_at=record.checked_at,
            error=record.error,
        )


class TrafficBatchMetadataResponse(CamelModel):
    total_domains: int = Field(..., ge=0)
    batches_processed: int = Field(..., ge=0)
    cache_hits: int = Field(..., ge=0)
    cache_misses: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
    background_retry: bool = False

    @classmethod
    def from_metadata(cls, metadata: TrafficBatchMetadata) -> "TrafficBatchMetadataResponse":
        return cls(
            total_domains=metadata.total_domains,
            batches_processed=metadata.batches_processed,
            cache_hits=metadata.cache_hits,
            cache_misses=metadata.cache_misses,
            errors=list(metadata.errors),
            background_retry=metadata.background_retry,
        )


class TrafficExtractResponse(CamelModel):
    results: list[TrafficRecordResponse]
    metadata: TrafficBatchMetadataResponse


class TrafficUpdateResponse(CamelModel):
    results: list[TrafficRecordResponse]


class TrafficTrendResponse(CamelModel):
    period: str
    avg_monthly_visits: float
    total_visits: int
    avg_bounce_rate: float
    avg_pages_per_visit: float
    data_points: int = Field(..., ge=0)

    @classmethod
    def from_trend(cls, trend: TrafficTrend) -> "TrafficTrendResponse":
        return cls(
            period=trend.period,
            avg_monthly_visits=trend.avg_monthly_visits,
            total_visits=trend.total_visits,
            avg_bounce_rate=trend.avg_bounce_rate,
            avg_pages_per_visit=trend.avg_pages_per_visit,
            data_points=trend.data_points,
        )


class TrafficTrendReportResponse(CamelModel):
    domain: str
    period: str
    historical: list[TrafficRecordResponse]
    trends: list[TrafficTrendResponse]

    @classmethod
    def from_report(cls, report: TrafficTrendReport) -> "TrafficTrendReportResponse":
        return cls(
            domain=report.domain,
            period=report.period,
            historical=[TrafficRecordResponse.from_record(record) for record in report.historical],
            trends=[TrafficTrendResponse.from_trend(trend) for trend in report.trends],
        )


class HealthResponse(CamelModel):
    status: str
    database: str
    browser_launches: int = Field(..., ge=0)
    background_retries_pending: int = Field(..., ge=0)
