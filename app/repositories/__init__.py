"""
app/repositories package marker.
"""

from app.repositories.traffic_repository import TrafficRepository, UsageLogRepository

__all__ = [
    "TrafficRepository",
    "UsageLogRepository",
]
