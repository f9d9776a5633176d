"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.traffic_latest import TrafficLatest
from db.models.traffic_snapshot import TrafficSnapshot
from db.models.usage_log import UsageLog

__all__ = [
    "TrafficLatest",
    "TrafficSnapshot",
    "UsageLog",
]
