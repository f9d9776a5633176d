"""
app/api/routers/traffic.py

Traffic extraction, update polling and trend endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.domain.traffic import DEFAULT_TREND_PERIOD
from app.scraping.domains import parse_domain_input
from app.scraping.errors import TrafficRequestError
from app.schemas.traffic import (
    TrafficBatchMetadataResponse,
    TrafficExtractRequest,
    TrafficExtractResponse,
    TrafficRecordResponse,
    TrafficTrendReportResponse,
    TrafficUpdateResponse,
)
from app.services.traffic_service import TrafficExtractionService, get_traffic_service

router = APIRouter(prefix="/api", tags=["traffic"])


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/traffic", response_model=TrafficExtractResponse)
async def extract_traffic(
    payload: TrafficExtractRequest,
    traffic_service: TrafficExtractionService = Depends(get_traffic_service),
) -> TrafficExtractResponse:
    """
    Return cached or freshly extracted metrics for a batch of domains.
    """

    try:
        result = await traffic_service.extract(payload.domains, bypass_cache=payload.bypass_cache)
    except TrafficRequestError as exc:
        raise _bad_request(exc) from exc

    return TrafficExtractResponse(
        results=[TrafficRecordResponse.from_record(record) for record in result.results],
        metadata=TrafficBatchMetadataResponse.from_metadata(result.metadata),
    )


@router.get("/traffic/update", response_model=TrafficUpdateResponse)
def poll_traffic_updates(
    domains: str = Query(..., description="Comma-separated domains"),
    traffic_service: TrafficExtractionService = Depends(get_traffic_service),
) -> TrafficUpdateResponse:
    """
    Return the latest stored row per domain so clients can pick up background retries.
    """

    try:
        records = traffic_service.get_updates(parse_domain_input(domains))
    except TrafficRequestError as exc:
        raise _bad_request(exc) from exc

    return TrafficUpdateResponse(
        results=[TrafficRecordResponse.from_record(record) for record in records],
    )


@router.get("/trends", response_model=TrafficTrendReportResponse)
def get_traffic_trends(
    domain: str = Query(..., description="Domain to report on"),
    period: str = Query(default=DEFAULT_TREND_PERIOD, description="One of 1m, 3m, 6m, 12m"),
    traffic_service: TrafficExtractionService = Depends(get_traffic_service),
) -> TrafficTrendReportResponse:
    try:
        report = traffic_service.get_trends(domain, period)
    except TrafficRequestError as exc:
        raise _bad_request(exc) from exc

    return TrafficTrendReportResponse.from_report(report)
