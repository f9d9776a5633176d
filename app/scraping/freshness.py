"""
Upstream-release-aware staleness rules for monthly snapshots.

Before the cutoff day the upstream may not have published last month yet, so a
previous-month snapshot is still served. From the cutoff day on only a
current-month snapshot is fresh.
"""

from __future__ import annotations

from datetime import datetime, timezone

from app.config import CacheSettings
from app.domain.traffic import month_key, shift_month_key


def ensure_utc(value: datetime) -> datetime:
    """
    Treat naive timestamps (SQLite drops tzinfo) as UTC.
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def snapshot_age_days(checked_at: datetime, now: datetime) -> float:
    delta = ensure_utc(now) - ensure_utc(checked_at)
    return max(0.0, delta.total_seconds() / 86400)


def is_snapshot_fresh(
    month_year: str | None,
    checked_at: datetime | None,
    *,
    now: datetime,
    settings: CacheSettings,
    max_age_days: int | None = None,
) -> bool:
    if not month_year or checked_at is None:
        return False

    max_age = settings.max_age_days if max_age_days is None else max_age_days
    age_days = snapshot_age_days(checked_at, now)
    current_month = month_key(now)

    if month_year == current_month:
        return age_days <= max_age
    if now.day < settings.cutoff_day and month_year == shift_month_key(now, -1):
        return age_days <= settings.previous_month_max_age_days
    return False
