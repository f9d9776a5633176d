"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class CacheSettings:
    """
    Snapshot freshness rules.

    The upstream publishes last month's numbers around the 10th; until
    `cutoff_day` a previous-month snapshot still counts as current data.
    """

    cutoff_day: int = 12
    max_age_days: int = 30
    previous_month_max_age_days: int = 45
    retention_months: int = 24


@dataclass(frozen=True)
class RetrySettings:
    """
    Foreground retry policy for one sub-batch.
    """

    max_retries: int = 3
    initial_delay_seconds: float = 5.0
    max_delay_seconds: float = 30.0
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class BackgroundRetrySettings:
    """
    Detached retry of domains that still failed after the request returned.
    """

    enabled: bool = True
    grace_seconds: float = 10.0
    max_retries: int = 2
    initial_delay_seconds: float = 10.0
    max_delay_seconds: float = 60.0
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Periodic maintenance jobs.
    """

    enabled: bool = True
    stale_refresh_enabled: bool = False
    stale_refresh_limit: int = 50
    stale_refresh_hour: int = 4
    prune_day: int = 1
    prune_hour: int = 3


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return cached snapshot freshness settings from environment variables.
    """

    return CacheSettings(
        cutoff_day=min(28, max(1, _get_int_env("TRAFFIC_CACHE_CUTOFF_DAY", 12))),
        max_age_days=max(1, _get_int_env("TRAFFIC_CACHE_MAX_AGE_DAYS", 30)),
        previous_month_max_age_days=max(
            1,
            _get_int_env("TRAFFIC_CACHE_PREVIOUS_MONTH_MAX_AGE_DAYS", 45),
        ),
        retention_months=max(1, _get_int_env("TRAFFIC_SNAPSHOT_RETENTION_MONTHS", 24)),
    )


@lru_cache(maxsize=1)
def get_retry_settings() -> RetrySettings:
    """
    Return foreground retry settings from environment variables.
    """

    return RetrySettings(
        max_retries=max(0, _get_int_env("TRAFFIC_RETRY_MAX_RETRIES", 3)),
        initial_delay_seconds=max(0.0, _get_float_env("TRAFFIC_RETRY_INITIAL_DELAY_SECONDS", 5.0)),
        max_delay_seconds=max(0.0, _get_float_env("TRAFFIC_RETRY_MAX_DELAY_SECONDS", 30.0)),
        backoff_multiplier=max(1.0, _get_float_env("TRAFFIC_RETRY_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_background_retry_settings() -> BackgroundRetrySettings:
    """
    Return background retry settings from environment variables.
    """

    return BackgroundRetrySettings(
        enabled=_get_bool_env("TRAFFIC_BACKGROUND_RETRY_ENABLED", True),
        grace_seconds=max(0.0, _get_float_env("TRAFFIC_BACKGROUND_RETRY_GRACE_SECONDS", 10.0)),
        max_retries=max(0, _get_int_env("TRAFFIC_BACKGROUND_RETRY_MAX_RETRIES", 2)),
        initial_delay_seconds=max(
            0.0,
            _get_float_env("TRAFFIC_BACKGROUND_RETRY_INITIAL_DELAY_SECONDS", 10.0),
        ),
        max_delay_seconds=max(0.0, _get_float_env("TRAFFIC_BACKGROUND_RETRY_MAX_DELAY_SECONDS", 60.0)),
        backoff_multiplier=max(1.0, _get_float_env("TRAFFIC_BACKGROUND_RETRY_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return maintenance scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("SCHEDULER_ENABLED", True),
        stale_refresh_enabled=_get_bool_env("STALE_REFRESH_ENABLED", False),
        stale_refresh_limit=max(1, _get_int_env("STALE_REFRESH_LIMIT", 50)),
        stale_refresh_hour=min(23, max(0, _get_int_env("STALE_REFRESH_HOUR", 4))),
        prune_day=min(28, max(1, _get_int_env("SNAPSHOT_PRUNE_DAY", 1))),
        prune_hour=min(23, max(0, _get_int_env("SNAPSHOT_PRUNE_HOUR", 3))),
    )
