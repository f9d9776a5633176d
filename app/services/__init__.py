"""
app/services package marker.
"""

from app.services.traffic_service import (
    TrafficExtractionService,
    get_browser_sessions,
    get_traffic_service,
)

__all__ = [
    "TrafficExtractionService",
    "get_browser_sessions",
    "get_traffic_service",
]
