"""
app/domain package marker.
"""

from app.domain.traffic import (
    DOMAIN_NOT_FOUND_ERROR,
    MISSING_RESULT_ERROR,
    DEFAULT_TREND_PERIOD,
    PENDING_RESULT_ERROR,
    TREND_PERIOD_MONTHS,
    HistoricalMonth,
    TrafficBatchMetadata,
    TrafficBatchResult,
    TrafficRecord,
    TrafficTrend,
    TrafficTrendReport,
)

__all__ = [
    "DOMAIN_NOT_FOUND_ERROR",
    "MISSING_RESULT_ERROR",
    "DEFAULT_TREND_PERIOD",
    "PENDING_RESULT_ERROR",
    "TREND_PERIOD_MONTHS",
    "HistoricalMonth",
    "TrafficBatchMetadata",
    "TrafficBatchResult",
    "TrafficRecord",
    "TrafficTrend",
    "TrafficTrendReport",
]
