"""HTTP controller layer for occupancy reports and timetable views."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from schedule_engine.controllers.dependencies import (
    get_catalog,
    get_occupancy_service,
    get_timetable_service,
)
from schedule_engine.controllers.schemas import (
    InstructorWorkloadResponse,
    OccupancyStatsResponse,
    RoomAvailabilityResponse,
    RoomTimetableResponse,
    WeeklyTimetableResponse,
    availability_to_response,
    parse_term,
    room_timetable_to_response,
    schedule_to_response,
    stats_to_response,
    workload_to_response,
)
from schedule_engine.domain.models import Weekday
from schedule_engine.repository.catalog_repository import CatalogLookup
from schedule_engine.services.conflict_service import ConflictDetectionError
from schedule_engine.services.occupancy_service import OccupancyStatisticsService
from schedule_engine.services.schedule_service import ScheduleValidationError
from schedule_engine.services.timetable_service import TimetableService
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/occupancy", tags=["occupancy"])
health_router = APIRouter(tags=["health"])


@health_router.get("/health", status_code=status.HTTP_200_OK)
async def health(request: Request) -> dict[str, str]:
    settings = request.app.state.settings
    return {"status": "ok", "service": settings.app_name, "version": settings.app_version}


@router.get(
    "/stats",
    response_model=OccupancyStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def occupancy_stats(
    academic_year: Optional[int] = None,
    academic_period: Optional[int] = None,
    service: OccupancyStatisticsService = Depends(get_occupancy_service),
) -> OccupancyStatsResponse:
    """Whole-store report unless a term is given."""
    try:
        term = parse_term(academic_year, academic_period, required=False)
        return stats_to_response(service.compute_stats(term))
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected occupancy stats failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute occupancy stats",
        ) from exc


@router.get(
    "/weekly",
    response_model=WeeklyTimetableResponse,
    status_code=status.HTTP_200_OK,
)
async def weekly_timetable(
    academic_year: int,
    academic_period: int,
    instructor_id: Optional[str] = None,
    room_id: Optional[str] = None,
    service: TimetableService = Depends(get_timetable_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> WeeklyTimetableResponse:
    try:
        term = parse_term(academic_year, academic_period)
        week = service.weekly_timetable(term, instructor_id=instructor_id, room_id=room_id)
        return WeeklyTimetableResponse(
            term=term.label,
            days={
                day: [schedule_to_response(entry, catalog) for entry in entries]
                for day, entries in week.items()
            },
        )
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConflictDetectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected weekly timetable failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build weekly timetable",
        ) from exc


@router.get(
    "/instructors/{instructor_id}/workload",
    response_model=InstructorWorkloadResponse,
    status_code=status.HTTP_200_OK,
)
async def instructor_workload(
    instructor_id: str,
    academic_year: int,
    academic_period: int,
    service: TimetableService = Depends(get_timetable_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> InstructorWorkloadResponse:
    try:
        term = parse_term(academic_year, academic_period)
        return workload_to_response(service.instructor_workload(instructor_id, term), catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConflictDetectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected instructor workload failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute instructor workload",
        ) from exc


@router.get(
    "/rooms/{room_id}",
    response_model=RoomTimetableResponse,
    status_code=status.HTTP_200_OK,
)
async def room_timetable(
    room_id: str,
    academic_year: int,
    academic_period: int,
    service: TimetableService = Depends(get_timetable_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> RoomTimetableResponse:
    try:
        term = parse_term(academic_year, academic_period)
        return room_timetable_to_response(service.room_timetable(room_id, term), catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConflictDetectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room timetable failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build room timetable",
        ) from exc


@router.get(
    "/rooms/{room_id}/availability",
    response_model=RoomAvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def room_availability(
    room_id: str,
    weekday: int,
    academic_year: int,
    academic_period: int,
    service: TimetableService = Depends(get_timetable_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> RoomAvailabilityResponse:
    """Free and busy windows of a room on one weekday, opening to closing."""
    try:
        term = parse_term(academic_year, academic_period)
        windows = service.room_availability(room_id, weekday, term)
        return availability_to_response(room_id, Weekday(weekday), term, windows, catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ConflictDetectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected room availability failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute room availability",
        ) from exc
