"""
db/models/traffic_latest.py

Per-domain projection of the most recent snapshot plus the last error seen.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class TrafficLatest(TimestampMixin, Base):
    __tablename__ = "traffic_latest"

    domain: Mapped[str] = mapped_column(String(255), primary_key=True)
    monthly_visits: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    avg_session_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bounce_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    pages_per_visit: Mapped[float | None] = mapped_column(Float, nullable=True)
    growth_rate: Mapped[float | None] = mapped_column(Float, nullable=True)
    month_year: Mapped[str] = mapped_column(String(7), nullable=False)
    checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Null until the domain has been extracted successfully once",
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_traffic_latest_checked_at", "checked_at"),
    )
