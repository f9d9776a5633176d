"""
Storage layer interfaces for traffic snapshots.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from app.domain.traffic import TrafficRecord, TrafficTrend


class TrafficStore(ABC):
    """
    Freshness-aware cache of monthly traffic snapshots.
    """

    @abstractmethod
    def save(self, record: TrafficRecord) -> None:
        """
        Persist one record: successes upsert the snapshot and latest row,
        failures only update the latest row's `last_error`. Past months in
        `record.history` are backfilled as snapshots where none exist yet.
        """

    def save_many(self, records: Sequence[TrafficRecord]) -> int:
        for record in records:
            self.save(record)
        return len(records)

    @abstractmethod
    def get_batch(self, domains: Sequence[str]) -> dict[str, TrafficRecord]:
        """
        Latest rows keyed by requested domain, `error` set to the last error seen.
        """

    @abstractmethod
    def is_fresh(self, domain: str, max_age_days: int | None = None) -> bool:
        """
        Whether the domain's latest snapshot may be served without re-extraction.
        """

    @abstractmethod
    def get_fresh_batch(
        self,
        domains: Sequence[str],
        max_age_days: int | None = None,
    ) -> dict[str, TrafficRecord]:
        """
        Fresh snapshot records keyed by requested domain; stale and unknown
        domains are absent.
        """

    @abstractmethod
    def get_history(self, domain: str, months: int = 12) -> list[TrafficRecord]:
        """
        Monthly snapshots, most recent first.
        """

    @abstractmethod
    def calculate_trends(self, domain: str) -> list[TrafficTrend]:
        """
        Averages over the trailing 1, 3, 6 and 12 snapshot months.
        """

    @abstractmethod
    def get_stale_domains(self, max_age_days: int | None = None, limit: int | None = None) -> list[str]:
        """
        Known domains whose latest snapshot is no longer fresh.
        """

    @abstractmethod
    def prune(self, keep_months: int | None = None) -> int:
        """
        Delete snapshots older than the retention window; return rows removed.
        """

    def ping(self) -> bool:
        return True
