"""
db/models/traffic_snapshot.py

One domain's traffic metrics for one calendar month.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin

DEFAULT_SOURCE = "traffic.cv"
HISTORY_SOURCE = "traffic.cv:visits-over-time"


class TrafficSnapshot(TimestampMixin, Base):
    __tablename__ = "traffic_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Cache key form: lowercase, no www. prefix",
    )
    month_year: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="YYYY-MM snapshot period",
    )
    monthly_visits: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    avg_session_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bounce_rate: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Percentage, 0-100",
    )
    pages_per_visit: Mapped[float | None] = mapped_column(Float, nullable=True)
    growth_rate: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
        comment="Signed month-over-month change, percent",
    )
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default=DEFAULT_SOURCE)

    __table_args__ = (
        UniqueConstraint("domain", "month_year", name="uq_traffic_snapshots_domain_month"),
        Index("ix_traffic_snapshots_domain", "domain"),
        Index("ix_traffic_snapshots_month_year", "month_year"),
        Index("ix_traffic_snapshots_checked_at", "checked_at"),
    )
