"""
Scraping configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

UPSTREAM_BATCH_LIMIT = 10

DEFAULT_READINESS_SELECTORS = (
    "[class*='card']",
    "table",
    "[class*='result']",
    "[class*='domain']",
)
DEFAULT_ROW_SELECTORS = (
    "table tbody tr",
    ".table tbody tr",
    "table tr",
    "[role='row']",
    "tbody > tr",
)
DEFAULT_CARD_SELECTORS = (
    "[class*='card']",
    "article",
    "[class*='result']",
    "[data-domain]",
)


@dataclass(frozen=True)
class SelectorConfig:
    """
    Ordered CSS selector lists probed against the upstream page.
    """

    readiness: tuple[str, ...] = DEFAULT_READINESS_SELECTORS
    rows: tuple[str, ...] = DEFAULT_ROW_SELECTORS
    cards: tuple[str, ...] = DEFAULT_CARD_SELECTORS


@dataclass(frozen=True)
class TrafficScrapingSettings:
    """
    Runtime settings for the upstream traffic page.
    """

    upstream_url: str = "https://traffic.cv/bulk"
    batch_size: int = UPSTREAM_BATCH_LIMIT
    parallel_batches: int = 5
    batch_delay_seconds: float = 2.0
    batch_timeout_seconds: float = 90.0
    navigation_timeout_seconds: float = 30.0
    readiness_timeout_seconds: float = 15.0
    readiness_poll_seconds: float = 0.5
    readiness_threshold: float = 0.8
    headless: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    blocked_resource_types: frozenset[str] = frozenset({"image", "font", "stylesheet", "media"})
    selectors: SelectorConfig = field(default_factory=SelectorConfig)
