from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import Depends, FastAPI

from app.schemas.traffic import HealthResponse
from app.services.traffic_service import (
    TrafficExtractionService,
    get_browser_sessions,
    get_traffic_service,
)


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.

    Does NOT auto-migrate; run ``alembic upgrade head`` first.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: %d table(s) missing: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """
    Validate the database, start the scheduler, and release the browser on exit.
    """
    log = logging.getLogger(__name__)
    _check_db()
    _check_schema()
    log.info("Database schema validated")

    from app.config import get_scheduler_settings
    from app.scheduler.jobs import build_scheduler

    service = get_traffic_service()
    scheduler = None
    if get_scheduler_settings().enabled:
        scheduler = build_scheduler(service)
        scheduler.start()
        log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            log.info("Scheduler shut down")
        await service.shutdown()
        await get_browser_sessions().close()
        log.info("Browser sessions closed")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()

    application = FastAPI(
        title="TrafficLens API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import traffic_router

    application.include_router(traffic_router)

    @application.get("/health", response_model=HealthResponse)
    def healthcheck(
        traffic_service: TrafficExtractionService = Depends(get_traffic_service),
    ) -> HealthResponse:
        database_ok = traffic_service.store.ping()
        background = traffic_service.background
        return HealthResponse(
            status="ok" if database_ok else "degraded",
            database="ok" if database_ok else "unavailable",
            browser_launches=get_browser_sessions().launch_count,
            background_retries_pending=background.pending if background is not None else 0,
        )

    return application


app = create_app()
