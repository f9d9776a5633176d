"""
app/api/routers package marker.
"""

from app.api.routers.traffic import router as traffic_router

__all__ = ["traffic_router"]
