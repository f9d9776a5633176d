"""
Environment + JSON config loader for traffic scraping.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from db.config import load_env_files

from app.scraping.config.models import (
    UPSTREAM_BATCH_LIMIT,
    SelectorConfig,
    TrafficScrapingSettings,
)

CONSTRAINED_ENV_MARKERS = ("TRAFFIC_CONSTRAINED_ENV", "RAILWAY_ENVIRONMENT")


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


def _is_constrained_environment() -> bool:
    return any(os.getenv(marker) for marker in CONSTRAINED_ENV_MARKERS)


@lru_cache(maxsize=1)
def get_traffic_scraping_settings() -> TrafficScrapingSettings:
    """
    Return cached upstream scraping settings from environment variables.

    Constrained deployments (small containers) render slowly, so the readiness
    wait defaults to 45s there instead of 15s.
    """

    load_env_files()
    defaults = TrafficScrapingSettings()
    readiness_default = 45.0 if _is_constrained_environment() else defaults.readiness_timeout_seconds
    blocked = _get_str_env(
        "TRAFFIC_BLOCKED_RESOURCE_TYPES",
        ",".join(sorted(defaults.blocked_resource_types)),
    )
    selector_path = os.getenv("TRAFFIC_SELECTOR_CONFIG_PATH")

    return TrafficScrapingSettings(
        upstream_url=_get_str_env("TRAFFIC_UPSTREAM_URL", defaults.upstream_url).rstrip("/"),
        batch_size=min(
            UPSTREAM_BATCH_LIMIT,
            max(1, _get_int_env("TRAFFIC_BATCH_SIZE", defaults.batch_size)),
        ),
        parallel_batches=max(1, _get_int_env("TRAFFIC_PARALLEL_BATCHES", defaults.parallel_batches)),
        batch_delay_seconds=max(
            0.0,
            _get_float_env("TRAFFIC_BATCH_DELAY_SECONDS", defaults.batch_delay_seconds),
        ),
        batch_timeout_seconds=max(
            1.0,
            _get_float_env("TRAFFIC_BATCH_TIMEOUT_SECONDS", defaults.batch_timeout_seconds),
        ),
        navigation_timeout_seconds=max(
            1.0,
            _get_float_env("TRAFFIC_NAVIGATION_TIMEOUT_SECONDS", defaults.navigation_timeout_seconds),
        ),
        readiness_timeout_seconds=max(
            1.0,
            _get_float_env("TRAFFIC_READINESS_TIMEOUT_SECONDS", readiness_default),
        ),
        readiness_threshold=min(
            1.0,
            max(0.0, _get_float_env("TRAFFIC_READINESS_THRESHOLD", defaults.readiness_threshold)),
        ),
        headless=_get_bool_env("TRAFFIC_HEADLESS", defaults.headless),
        user_agent=_get_str_env("TRAFFIC_USER_AGENT", defaults.user_agent),
        blocked_resource_types=frozenset(
            item.strip().lower() for item in blocked.split(",") if item.strip()
        ),
        selectors=load_selector_config(config_path=selector_path) if selector_path else SelectorConfig(),
    )


def load_selector_config(*, config_path: str) -> SelectorConfig:
    """
    Load selector overrides from a JSON file.

    Keys ``readiness``, ``rows`` and ``cards`` each take a list of CSS selectors;
    missing or empty keys keep the built-in defaults.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Selector config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw_data, dict):
        raise ValueError("Invalid selector config: top level must be an object.")

    defaults = SelectorConfig()
    return SelectorConfig(
        readiness=_normalize_selectors(raw_data.get("readiness")) or defaults.readiness,
        rows=_normalize_selectors(raw_data.get("rows")) or defaults.rows,
        cards=_normalize_selectors(raw_data.get("cards")) or defaults.cards,
    )


def _normalize_selectors(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),) if value.strip() else ()
    if not isinstance(value, list):
        return ()
    return tuple(
        item.strip()
        for item in value
        if isinstance(item, str) and item.strip()
    )
