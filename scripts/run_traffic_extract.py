"""
Run a batch traffic extraction from CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from app.config import BackgroundRetrySettings
from app.scraping.browser import BrowserSessionManager
from app.scraping.domains import parse_domain_input
from app.scraping.engine import TrafficScrapingEngine
from app.scraping.storage import SQLAlchemyTrafficStore
from app.services.traffic_service import TrafficExtractionService
from db.session import SessionLocal


async def _extract(domains: list[str], *, bypass_cache: bool) -> dict:
    async with BrowserSessionManager() as sessions:
        service = TrafficExtractionService(
            store=SQLAlchemyTrafficStore(session_factory=SessionLocal),
            process_batch=TrafficScrapingEngine(sessions=sessions).scrape,
            background_settings=BackgroundRetrySettings(enabled=False),
            usage_session_factory=SessionLocal,
        )
        result = await service.extract(domains, bypass_cache=bypass_cache)

    return {
        "results": [
            {
                "domain": record.domain,
                "month_year": record.month_year,
                "monthly_visits": record.monthly_visits,
                "avg_session_duration": record.avg_session_duration,
                "bounce_rate": record.bounce_rate,
                "pages_per_visit": record.pages_per_visit,
                "error": record.error,
            }
            for record in result.results
        ],
        "metadata": {
            "total_domains": result.metadata.total_domains,
            "batches_processed": result.metadata.batches_processed,
            "cache_hits": result.metadata.cache_hits,
            "cache_misses": result.metadata.cache_misses,
            "errors": result.metadata.errors,
        },
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Extract monthly traffic metrics for domains.")
    parser.add_argument("domains", nargs="*", help="Domains to extract.")
    parser.add_argument(
        "--file",
        dest="file",
        default=None,
        help="Optional text file with one domain per line or comma separated.",
    )
    parser.add_argument(
        "--bypass-cache",
        action="store_true",
        help="Re-extract even when a fresh snapshot is stored.",
    )
    args = parser.parse_args()

    raw_domains = list(args.domains)
    if args.file:
        raw_domains.extend(parse_domain_input(Path(args.file).read_text(encoding="utf-8")))
    if not raw_domains:
        parser.error("Provide at least one domain or --file.")

    payload = asyncio.run(_extract(raw_domains, bypass_cache=args.bypass_cache))
    print(json.dumps(payload, indent=2, default=str))
    return 0 if all(item["error"] is None for item in payload["results"]) else 1


if __name__ == "__main__":
    raise SystemExit(main())
