"""
tests/test_traffic_api.py

Pytest tests for the HTTP API: camelCase payloads, status codes and wiring.

The service dependency is overridden with one backed by in-memory SQLite and a
fake batch processor; the application lifespan is not started.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.config import BackgroundRetrySettings, RetrySettings
from app.domain.traffic import HistoricalMonth, TrafficRecord, month_key
from app.main import app
from app.scraping.config import TrafficScrapingSettings
from app.scraping.storage import SQLAlchemyTrafficStore
from app.services.traffic_service import TrafficExtractionService, get_traffic_service


@pytest.fixture()
def client(session_factory: sessionmaker, now: datetime) -> Iterator[TestClient]:
    async def process(domains: list[str]) -> list[TrafficRecord]:
        period = month_key(now)
        return [
            TrafficRecord(
                domain=domain,
                month_year=period,
                monthly_visits=3720,
                avg_session_duration_seconds=864,
                bounce_rate=31.93,
                pages_per_visit=3.13,
                growth_rate=19.66,
                history=(HistoricalMonth("2026-09", 3110),),
                checked_at=now,
            )
            if domain != "quiet.net"
            else TrafficRecord(domain=domain, month_year=period, monthly_visits=0, checked_at=now)
            for domain in domains
        ]

    async def no_sleep(seconds: float) -> None:
        return None

    service = TrafficExtractionService(
        store=SQLAlchemyTrafficStore(session_factory=session_factory, clock=lambda: now),
        process_batch=process,
        scraping_settings=TrafficScrapingSettings(batch_delay_seconds=0.0),
        retry_settings=RetrySettings(max_retries=0),
        background_settings=BackgroundRetrySettings(enabled=False),
        usage_session_factory=session_factory,
        sleep=no_sleep,
        clock=lambda: now,
    )
    app.dependency_overrides[get_traffic_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# POST /api/traffic
# ---------------------------------------------------------------------------


class TestExtractEndpoint:
    def test_returns_camel_case_results_and_metadata(self, client: TestClient) -> None:
        response = client.post("/api/traffic", json={"domains": ["Example.com/", "quiet.net"]})

        assert response.status_code == 200
        body = response.json()
        first = body["results"][0]
        assert first["domain"] == "example.com"
        assert first["monthlyVisits"] == 3720
        assert first["avgSessionDuration"] == "00:14:24"
        assert first["avgSessionDurationSeconds"] == 864
        assert first["bounceRate"] == 31.93
        assert first["growthRate"] == 19.66
        assert first["error"] is None
        assert body["results"][1]["monthlyVisits"] == 0
        assert body["results"][1]["growthRate"] is None
        assert body["metadata"] == {
            "totalDomains": 2,
            "batchesProcessed": 1,
            "cacheHits": 0,
            "cacheMisses": 2,
            "errors": [],
            "backgroundRetry": False,
        }

    def test_second_call_is_served_from_cache(self, client: TestClient) -> None:
        client.post("/api/traffic", json={"domains": ["example.com"]})
        response = client.post("/api/traffic", json={"domains": ["www.example.com"], "bypassCache": False})

        assert response.json()["metadata"]["cacheHits"] == 1

    def test_bypass_cache_flag(self, client: TestClient) -> None:
        client.post("/api/traffic", json={"domains": ["example.com"]})
        response = client.post("/api/traffic", json={"domains": ["example.com"], "bypassCache": True})

        assert response.json()["metadata"]["cacheMisses"] == 1

    @pytest.mark.parametrize("payload", [{"domains": []}, {"domains": ["invalid_domain"]}, {}])
    def test_no_valid_domains_is_bad_request(self, client: TestClient, payload: dict) -> None:
        response = client.post("/api/traffic", json=payload)
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# GET /api/traffic/update
# ---------------------------------------------------------------------------


class TestUpdateEndpoint:
    def test_returns_latest_rows_and_placeholders(self, client: TestClient) -> None:
        client.post("/api/traffic", json={"domains": ["example.com"]})
        response = client.get("/api/traffic/update", params={"domains": "example.com,unknown.org"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results[0]["monthlyVisits"] == 3720
        assert results[1]["domain"] == "unknown.org"
        assert results[1]["error"] == "still scraping"

    def test_requires_domains(self, client: TestClient) -> None:
        assert client.get("/api/traffic/update", params={"domains": " , "}).status_code == 400


# ---------------------------------------------------------------------------
# GET /api/trends
# ---------------------------------------------------------------------------


class TestTrendsEndpoint:
    def test_returns_history_and_trends(self, client: TestClient) -> None:
        client.post("/api/traffic", json={"domains": ["example.com"]})
        response = client.get("/api/trends", params={"domain": "example.com", "period": "1m"})

        assert response.status_code == 200
        body = response.json()
        assert body["domain"] == "example.com"
        assert body["period"] == "1m"
        assert body["historical"][0]["monthlyVisits"] == 3720
        assert body["trends"][0]["avgMonthlyVisits"] == 3720
        assert body["trends"][0]["dataPoints"] == 1

    def test_backfilled_months_appear_in_history(self, client: TestClient) -> None:
        client.post("/api/traffic", json={"domains": ["example.com"]})
        response = client.get("/api/trends", params={"domain": "example.com", "period": "3m"})

        historical = response.json()["historical"]
        assert [row["monthYear"] for row in historical] == ["2026-10", "2026-09"]
        assert [row["monthlyVisits"] for row in historical] == [3720, 3110]

    def test_invalid_domain_is_bad_request(self, client: TestClient) -> None:
        assert client.get("/api/trends", params={"domain": "not a domain"}).status_code == 400


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


class TestHealthEndpoint:
    def test_reports_database_and_retry_state(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["backgroundRetriesPending"] == 0
