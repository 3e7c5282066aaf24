"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from schedule_engine.controllers.conflict_controller import router as conflict_router
from schedule_engine.controllers.occupancy_controller import health_router
from schedule_engine.controllers.occupancy_controller import router as occupancy_router
from schedule_engine.controllers.schedule_controller import router as schedule_router
from schedule_engine.domain.models import Term
from schedule_engine.repository.catalog_repository import CatalogRepository
from schedule_engine.repository.schedule_repository import ScheduleRepository
from schedule_engine.services.conflict_service import ConflictDetectionService
from schedule_engine.services.occupancy_service import OccupancyStatisticsService
from schedule_engine.services.schedule_service import ScheduleService
from schedule_engine.services.timetable_service import TimetableService
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)

DEMO_TERM = Term(academic_year=2024, academic_period=1)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service is constructed here and injected via app.state, so each
    dependency is traceable from this function.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    # --- Repositories (one sqlite file, short-lived connections) ---
    repository = ScheduleRepository(settings)
    catalog = CatalogRepository(settings)

    # --- Services ---
    schedule_service = ScheduleService(repository=repository, settings=settings)
    conflict_service = ConflictDetectionService(
        repository=repository,
        schedule_service=schedule_service,
        catalog=catalog,
        settings=settings,
    )
    occupancy_service = OccupancyStatisticsService(
        repository=repository,
        catalog=catalog,
        settings=settings,
    )
    timetable_service = TimetableService(
        repository=repository,
        conflict_service=conflict_service,
        catalog=catalog,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(schedule_router)
    app.include_router(conflict_router)
    app.include_router(occupancy_router)
    app.include_router(health_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.catalog = catalog
    app.state.schedule_service = schedule_service
    app.state.conflict_service = conflict_service
    app.state.occupancy_service = occupancy_service
    app.state.timetable_service = timetable_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Tables are created first; demo rows are only written into empty tables.
    """
    settings: Settings = app.state.settings
    repository: ScheduleRepository = app.state.repository
    catalog: CatalogRepository = app.state.catalog

    logger.info("Startup: initializing database schema")
    repository.initialize_database()
    catalog.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo catalog and schedules (skipped if tables not empty)")
        catalog.seed_demo_catalog_if_empty()
        repository.seed_demo_schedules_if_empty(DEMO_TERM)

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
