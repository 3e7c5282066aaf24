"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, Request, status

from schedule_engine.repository.catalog_repository import CatalogLookup
from schedule_engine.services.conflict_service import ConflictDetectionService
from schedule_engine.services.occupancy_service import OccupancyStatisticsService
from schedule_engine.services.schedule_service import ScheduleService
from schedule_engine.services.timetable_service import TimetableService


def _require_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_schedule_service(request: Request) -> ScheduleService:
    return _require_state(request, "schedule_service", "Schedule service")


def get_conflict_service(request: Request) -> ConflictDetectionService:
    return _require_state(request, "conflict_service", "Conflict detection service")


def get_occupancy_service(request: Request) -> OccupancyStatisticsService:
    return _require_state(request, "occupancy_service", "Occupancy service")


def get_timetable_service(request: Request) -> TimetableService:
    return _require_state(request, "timetable_service", "Timetable service")


def get_catalog(request: Request) -> Optional[CatalogLookup]:
    """Catalog enrichment is optional; responses fall back to raw ids."""
    return getattr(request.app.state, "catalog", None)
