"""HTTP controller layer for schedule entry lifecycle."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from schedule_engine.controllers.dependencies import get_catalog, get_schedule_service
from schedule_engine.controllers.schemas import (
    BulkCreateRequest,
    BulkCreateResponse,
    ScheduleCreateRequest,
    SchedulePageResponse,
    ScheduleResponse,
    ScheduleUpdateRequest,
    page_to_response,
    parse_clock_param,
    schedule_to_response,
)
from schedule_engine.domain.models import ScheduleFilters, ScheduleOrdering, ScheduleStatus
from schedule_engine.repository.catalog_repository import CatalogLookup
from schedule_engine.services.schedule_service import (
    ScheduleNotFoundError,
    ScheduleService,
    ScheduleValidationError,
)
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post(
    "",
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_schedule(
    payload: ScheduleCreateRequest,
    service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ScheduleResponse:
    """Persist a new entry; clashes are reported by the conflict routes, never blocked."""
    try:
        draft = service.build_draft(payload.model_dump())
        entry = service.create(draft)
        return schedule_to_response(entry, catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule create failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create schedule entry",
        ) from exc


@router.post(
    "/bulk",
    response_model=BulkCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_schedules(
    payload: BulkCreateRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> BulkCreateResponse:
    try:
        drafts = []
        for index, item in enumerate(payload.entries):
            try:
                drafts.append(service.build_draft(item.model_dump()))
            except ScheduleValidationError as exc:
                raise ScheduleValidationError(f"entry {index}: {exc}") from exc
        return BulkCreateResponse(created=service.bulk_create(drafts))
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected bulk create failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create schedule entries",
        ) from exc


@router.get(
    "",
    response_model=SchedulePageResponse,
    status_code=status.HTTP_200_OK,
)
async def list_schedules(
    subject_id: Optional[str] = None,
    instructor_id: Optional[str] = None,
    room_id: Optional[str] = None,
    has_room: Optional[bool] = None,
    weekday: Optional[int] = None,
    academic_year: Optional[int] = None,
    academic_period: Optional[int] = None,
    status_filter: Optional[ScheduleStatus] = Query(default=None, alias="status"),
    starts_at_or_after: Optional[str] = None,
    ends_at_or_before: Optional[str] = None,
    search: Optional[str] = None,
    skip: int = 0,
    take: Optional[int] = None,
    ordering: ScheduleOrdering = ScheduleOrdering.CREATED_DESC,
    service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> SchedulePageResponse:
    try:
        filters = ScheduleFilters(
            subject_id=subject_id,
            instructor_id=instructor_id,
            room_id=room_id,
            has_room=has_room,
            weekday=weekday,
            academic_year=academic_year,
            academic_period=academic_period,
            status=status_filter,
            starts_at_or_after=parse_clock_param("starts_at_or_after", starts_at_or_after),
            ends_at_or_before=parse_clock_param("ends_at_or_before", ends_at_or_before),
            search=search,
        )
        page = service.list(filters=filters, page=service.page_request(skip, take), ordering=ordering)
        return page_to_response(page, catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule listing failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list schedule entries",
        ) from exc


@router.get(
    "/search",
    response_model=SchedulePageResponse,
    status_code=status.HTTP_200_OK,
)
async def search_schedules(
    q: str,
    academic_year: Optional[int] = None,
    academic_period: Optional[int] = None,
    skip: int = 0,
    take: Optional[int] = None,
    service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> SchedulePageResponse:
    """Active entries whose subject, instructor or room name contains `q`."""
    filters = ScheduleFilters(
        academic_year=academic_year,
        academic_period=academic_period,
        status=ScheduleStatus.ACTIVE,
    )
    try:
        page = service.search(q, filters=filters, page=service.page_request(skip, take))
        return page_to_response(page, catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule search failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search schedule entries",
        ) from exc


@router.get(
    "/{entry_id}",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
)
async def get_schedule(
    entry_id: str,
    service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ScheduleResponse:
    try:
        return schedule_to_response(service.get(entry_id), catalog)
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule read failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read schedule entry",
        ) from exc


@router.patch(
    "/{entry_id}",
    response_model=ScheduleResponse,
    status_code=status.HTTP_200_OK,
)
async def update_schedule(
    entry_id: str,
    payload: ScheduleUpdateRequest,
    service: ScheduleService = Depends(get_schedule_service),
    catalog: Optional[CatalogLookup] = Depends(get_catalog),
) -> ScheduleResponse:
    """Fields omitted from the body stay untouched; an explicit null room clears it."""
    try:
        entry = service.update(entry_id, payload.model_dump(exclude_unset=True))
        return schedule_to_response(entry, catalog)
    except ScheduleValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule update failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update schedule entry",
        ) from exc


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_schedule(
    entry_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> Response:
    try:
        service.delete(entry_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except ScheduleNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected schedule delete failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete schedule entry",
        ) from exc
