"""HTTP controller layer for clash detection."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from schedule_engine.controllers.dependencies import (
    get_catalog,
    get_conflict_service,
    get_schedule_service,
)
from schedule_engine.controllers.schemas import (
    ConflictListResponse,
    ScheduleCreateRequest,
    conflicts_to_response,
    parse_term,
)
from schedule_engine.repository.catalog_repository import CatalogLookup
from schedule_engine.services.conflict_service import (
    ConflictDetectionError,
    ConflictDetectionService,
)
from schedule_engine.services.schedule_service import (
    ScheduleNotFoundError,
    ScheduleService,
    ScheduleValidationError,
)
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.get(
    "/schedules/{entry_id}",
    response_model=ConflictListResponse,
    status_code=status.HTTP_200_OK,
)
async def find_conflicts(
    entry_id: str,
    service: ConflictDetectionService = Depends(get_conflict_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ConflictListResponse:
    try:
        return conflicts_to_response(service.find_conflicts(entry_id), catalog)
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ConflictDetectionError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected conflict scan failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to detect conflicts",
        ) from exc


@router.post(
    "/check",
    response_model=ConflictListResponse,
    status_code=status.HTTP_200_OK,
)
async def check_proposed(
    payload: ScheduleCreateRequest,
    service: ConflictDetectionService = Depends(get_conflict_service),
    schedule_service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ConflictListResponse:
    """Pre-flight check for an entry that has not been saved."""
    try:
        draft = schedule_service.build_draft(payload.model_dump())
        return conflicts_to_response(service.check_proposed(draft), catalog)
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
        logger.exception("Unexpected proposed entry check failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check proposed entry",
        ) from exc


@router.get(
    "",
    response_model=ConflictListResponse,
    status_code=status.HTTP_200_OK,
)
async def detect_term_conflicts(
    academic_year: int,
    academic_period: int,
    service: ConflictDetectionService = Depends(get_conflict_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ConflictListResponse:
    try:
        term = parse_term(academic_year, academic_period)
        return conflicts_to_response(service.detect_term_conflicts(term), catalog)
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
        logger.exception("Unexpected term conflict scan failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to detect term conflicts",
        ) from exc
