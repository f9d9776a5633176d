"""
Storage layer exports.
"""

from app.scraping.storage.base import TrafficStore
from app.scraping.storage.sqlalchemy_storage import SQLAlchemyTrafficStore

__all__ = ["SQLAlchemyTrafficStore", "TrafficStore"]
