"""
Config helpers for traffic scraping.
"""

from app.scraping.config.loader import get_traffic_scraping_settings, load_selector_config
from app.scraping.config.models import (
    UPSTREAM_BATCH_LIMIT,
    SelectorConfig,
    TrafficScrapingSettings,
)

__all__ = [
    "SelectorConfig",
    "TrafficScrapingSettings",
    "UPSTREAM_BATCH_LIMIT",
    "get_traffic_scraping_settings",
    "load_selector_config",
]
