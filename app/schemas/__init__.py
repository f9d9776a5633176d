"""
app/schemas package marker.
"""

from app.schemas.traffic import (
    HealthResponse,
    TrafficBatchMetadataResponse,
    TrafficExtractRequest,
    TrafficExtractResponse,
    TrafficRecordResponse,
    TrafficTrendReportResponse,
    TrafficTrendResponse,
    TrafficUpdateResponse,
)

__all__ = [
    "HealthResponse",
    "TrafficBatchMetadataResponse",
    "TrafficExtractRequest",
    "TrafficExtractResponse",
    "TrafficRecordResponse",
    "TrafficTrendReportResponse",
    "TrafficTrendResponse",
    "TrafficUpdateResponse",
]
