"""
db/session.py

SQLAlchemy engine and session factory for the traffic store.

The engine is created lazily so importing models or repositories never opens
a connection; request handlers, background retries and scheduler jobs each
take their own short-lived session from ``SessionLocal``.
"""

from __future__ import annotations

import os
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _engine_options(database_url: str) -> dict[str, Any]:
    """
    Pool settings per backend. Raises RuntimeError for unsupported URLs.
    """

    if database_url.startswith("sqlite"):
        # Scheduler jobs run in executor threads.
        return {"connect_args": {"check_same_thread": False}}
    if database_url.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "pool_recycle": _get_int_env("DB_POOL_RECYCLE", 1800),
            "pool_size": _get_int_env("DB_POOL_SIZE", 5),
            "max_overflow": _get_int_env("DB_MAX_OVERFLOW", 10),
        }
    raise RuntimeError("Only PostgreSQL and SQLite URLs are supported.")


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or resolve_database_url()
    return create_engine(url, echo=_get_bool_env("SQL_ECHO", default=False), **_engine_options(url))


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            class_=Session,
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


def SessionLocal() -> Session:
    """Open a session on the shared engine."""
    return _get_session_factory()()
