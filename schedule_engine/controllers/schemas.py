"""Request/response DTOs shared by the HTTP controllers."""

from __future__ import annotations

from datetime import datetime, time
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from schedule_engine.domain.models import (
    AvailabilityWindow,
    ConflictKind,
    ConflictRecord,
    InstructorWorkload,
    OccupancyStats,
    RoomTimetable,
    ScheduleDraft,
    ScheduleEntry,
    SchedulePage,
    ScheduleStatus,
    Term,
    Weekday,
    format_clock_time,
    parse_clock_time,
)
from schedule_engine.repository.catalog_repository import CatalogLookup, lookup_display_name
from schedule_engine.services.schedule_service import ScheduleValidationError
from schedule_engine.utils.config import get_settings


settings = get_settings()


def _strip_identifier(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not value.strip():
        raise ValueError("identifier must be non-empty")
    return value.strip()


class ScheduleCreateRequest(BaseModel):
    """Input DTO; slot ordering and term ranges are checked by the service."""

    subject_id: str = Field(min_length=1)
    instructor_id: str = Field(min_length=1)
    room_id: Optional[str] = None
    weekday: int
    start_time: str = Field(pattern=settings.time_of_day_regex)
    end_time: str = Field(pattern=settings.time_of_day_regex)
    academic_year: int
    academic_period: int
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    notes: Optional[str] = None

    @field_validator("subject_id", "instructor_id", "room_id")
    @classmethod
    def validate_identifiers(cls, value: Optional[str]) -> Optional[str]:
        return _strip_identifier(value)


class ScheduleUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are applied."""

    subject_id: Optional[str] = None
    instructor_id: Optional[str] = None
    room_id: Optional[str] = None
    weekday: Optional[int] = None
    start_time: Optional[str] = Field(default=None, pattern=settings.time_of_day_regex)
    end_time: Optional[str] = Field(default=None, pattern=settings.time_of_day_regex)
    academic_year: Optional[int] = None
    academic_period: Optional[int] = None
    status: Optional[ScheduleStatus] = None
    notes: Optional[str] = None

    @field_validator("subject_id", "instructor_id", "room_id")
    @classmethod
    def validate_identifiers(cls, value: Optional[str]) -> Optional[str]:
        return _strip_identifier(value)


class BulkCreateRequest(BaseModel):
    entries: list[ScheduleCreateRequest]


class BulkCreateResponse(BaseModel):
    created: int = Field(ge=0)


class ScheduleResponse(BaseModel):
    entry_id: str
    subject_id: str
    subject_name: Optional[str] = None
    instructor_id: str
    instructor_name: Optional[str] = None
    room_id: Optional[str]
    room_name: Optional[str] = None
    weekday: int = Field(ge=1, le=7)
    day_name: str
    start_time: str
    end_time: str
    academic_year: int
    academic_period: int
    term: str
    status: ScheduleStatus
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class SchedulePageResponse(BaseModel):
    items: list[ScheduleResponse]
    total: int = Field(ge=0)
    skip: int = Field(ge=0)
    take: int = Field(ge=1)
    page: int = Field(ge=1)
    pages: int = Field(ge=0)


class ProposedEntryResponse(BaseModel):
    """Wire shape of a draft that was checked but never stored."""

    subject_id: str
    subject_name: Optional[str] = None
    instructor_id: str
    instructor_name: Optional[str] = None
    room_id: Optional[str]
    room_name: Optional[str] = None
    weekday: int = Field(ge=1, le=7)
    day_name: str
    start_time: str
    end_time: str
    academic_year: int
    academic_period: int
    term: str
    status: ScheduleStatus
    notes: Optional[str]


class ConflictResponse(BaseModel):
    kind: ConflictKind
    description: str
    entry_id: Optional[str]
    other_entry_id: str
    entry: Union[ScheduleResponse, ProposedEntryResponse]
    other_entry: ScheduleResponse


class ConflictListResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictResponse]


class RoomUsageResponse(BaseModel):
    room_id: str
    room_name: Optional[str] = None
    usage_count: int = Field(ge=0)
    utilization: float = Field(ge=0.0)


class OccupancyStatsResponse(BaseModel):
    term: Optional[str]
    total_entries: int = Field(ge=0)
    by_weekday: dict[str, int]
    by_hour: dict[str, int]
    top_rooms: list[RoomUsageResponse]
    rooms_in_use: int = Field(ge=0)
    overall_utilization: float = Field(ge=0.0)
    instructors_active: int = Field(ge=0)
    subjects_scheduled: int = Field(ge=0)
    weekly_hours: float = Field(ge=0.0)
    slot_capacity_per_room_per_week: int = Field(gt=0)


class WeeklyTimetableResponse(BaseModel):
    term: str
    days: dict[str, list[ScheduleResponse]]


class SubjectLoadResponse(BaseModel):
    subject_id: str
    subject_name: Optional[str] = None
    weekly_hours: float = Field(ge=0.0)
    entries: list[ScheduleResponse]


class InstructorWorkloadResponse(BaseModel):
    instructor_id: str
    instructor_name: Optional[str] = None
    term: str
    total_weekly_hours: float = Field(ge=0.0)
    subjects: list[SubjectLoadResponse]
    conflicts: list[ConflictResponse]


class RoomTimetableResponse(BaseModel):
    room_id: str
    room_name: Optional[str] = None
    term: str
    booked_hours: float = Field(ge=0.0)
    occupancy_rate: float = Field(ge=0.0)
    entries: list[ScheduleResponse]
    conflicts: list[ConflictResponse]


class AvailabilityWindowResponse(BaseModel):
    start_time: str
    end_time: str
    minutes: int = Field(gt=0)
    available: bool
    entry_id: Optional[str] = None
    subject_id: Optional[str] = None
    subject_name: Optional[str] = None


class RoomAvailabilityResponse(BaseModel):
    room_id: str
    room_name: Optional[str] = None
    term: str
    weekday: int = Field(ge=1, le=7)
    day_name: str
    windows: list[AvailabilityWindowResponse]


def parse_term(
    academic_year: Optional[int],
    academic_period: Optional[int],
    *,
    required: bool = True,
) -> Optional[Term]:
    """Build a Term from query parameters; both or neither must be given."""
    if academic_year is None and academic_period is None and not required:
        return None
    if academic_year is None or academic_period is None:
        raise ScheduleValidationError("academic_year and academic_period must be given together")
    try:
        return Term(academic_year=academic_year, academic_period=academic_period)
    except ValueError as exc:
        raise ScheduleValidationError(str(exc)) from exc


def parse_clock_param(name: str, value: Optional[str]) -> Optional[time]:
    """HH:MM query parameter as a time; None when absent."""
    if value is None:
        return None
    try:
        return parse_clock_time(value)
    except ValueError as exc:
        raise ScheduleValidationError(f"{name} must follow HH:MM format") from exc


def schedule_to_response(
    entry: ScheduleEntry,
    catalog: Optional[CatalogLookup] = None,
) -> ScheduleResponse:
    """Single mapping from a stored entry to its wire shape."""
    return ScheduleResponse(
        entry_id=entry.entry_id,
        subject_id=entry.subject_id,
        subject_name=lookup_display_name(catalog, "subject", entry.subject_id),
        instructor_id=entry.instructor_id,
        instructor_name=lookup_display_name(catalog, "instructor", entry.instructor_id),
        room_id=entry.room_id,
        room_name=lookup_display_name(catalog, "room", entry.room_id),
        weekday=entry.slot.weekday,
        day_name=entry.slot.day_name,
        start_time=format_clock_time(entry.slot.start_time),
        end_time=format_clock_time(entry.slot.end_time),
        academic_year=entry.term.academic_year,
        academic_period=entry.term.academic_period,
        term=entry.term.label,
        status=entry.status,
        notes=entry.notes,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def draft_to_response(
    draft: ScheduleDraft,
    catalog: Optional[CatalogLookup] = None,
) -> ProposedEntryResponse:
    return ProposedEntryResponse(
        subject_id=draft.subject_id,
        subject_name=lookup_display_name(catalog, "subject", draft.subject_id),
        instructor_id=draft.instructor_id,
        instructor_name=lookup_display_name(catalog, "instructor", draft.instructor_id),
        room_id=draft.room_id,
        room_name=lookup_display_name(catalog, "room", draft.room_id),
        weekday=draft.slot.weekday,
        day_name=draft.slot.day_name,
        start_time=format_clock_time(draft.slot.start_time),
        end_time=format_clock_time(draft.slot.end_time),
        academic_year=draft.term.academic_year,
        academic_period=draft.term.academic_period,
        term=draft.term.label,
        status=draft.status,
        notes=draft.notes,
    )


def response_to_fields(response: ScheduleResponse) -> dict:
    """Inverse of schedule_to_response for the fields build_draft() accepts."""
    return {
        "subject_id": response.subject_id,
        "instructor_id": response.instructor_id,
        "room_id": response.room_id,
        "weekday": response.weekday,
        "start_time": response.start_time,
        "end_time": response.end_time,
        "academic_year": response.academic_year,
        "academic_period": response.academic_period,
        "status": response.status,
        "notes": response.notes,
    }


def page_to_response(page: SchedulePage, catalog: Optional[CatalogLookup] = None) -> SchedulePageResponse:
    return SchedulePageResponse(
        items=[schedule_to_response(item, catalog) for item in page.items],
        total=page.total,
        skip=page.skip,
        take=page.take,
        page=page.page,
        pages=page.pages,
    )


def conflict_to_response(
    record: ConflictRecord,
    catalog: Optional[CatalogLookup] = None,
) -> ConflictResponse:
    if isinstance(record.entry, ScheduleEntry):
        entry = schedule_to_response(record.entry, catalog)
    else:
        entry = draft_to_response(record.entry, catalog)
    return ConflictResponse(
        kind=record.kind,
        description=record.description,
        entry_id=record.entry_id,
        other_entry_id=record.other_entry_id,
        entry=entry,
        other_entry=schedule_to_response(record.other_entry, catalog),
    )


def conflicts_to_response(
    records: list[ConflictRecord],
    catalog: Optional[CatalogLookup] = None,
) -> ConflictListResponse:
    return ConflictListResponse(
        has_conflicts=bool(records),
        conflicts=[conflict_to_response(record, catalog) for record in records],
    )


def stats_to_response(stats: OccupancyStats) -> OccupancyStatsResponse:
    return OccupancyStatsResponse(
        term=stats.term.label if stats.term is not None else None,
        total_entries=stats.total_entries,
        by_weekday=stats.by_weekday,
        by_hour=stats.by_hour,
        top_rooms=[
            RoomUsageResponse(
                room_id=room.room_id,
                room_name=room.room_name,
                usage_count=room.usage_count,
                utilization=room.utilization,
            )
            for room in stats.top_rooms
        ],
        rooms_in_use=stats.rooms_in_use,
        overall_utilization=stats.overall_utilization,
        instructors_active=stats.instructors_active,
        subjects_scheduled=stats.subjects_scheduled,
        weekly_hours=stats.weekly_hours,
        slot_capacity_per_room_per_week=stats.slot_capacity_per_room_per_week,
    )


def workload_to_response(
    workload: InstructorWorkload,
    catalog: Optional[CatalogLookup] = None,
) -> InstructorWorkloadResponse:
    return InstructorWorkloadResponse(
        instructor_id=workload.instructor_id,
        instructor_name=workload.instructor_name,
        term=workload.term.label,
        total_weekly_hours=workload.total_weekly_hours,
        subjects=[
            SubjectLoadResponse(
                subject_id=load.subject_id,
                subject_name=load.subject_name,
                weekly_hours=load.weekly_hours,
                entries=[schedule_to_response(entry, catalog) for entry in load.entries],
            )
            for load in workload.subjects
        ],
        conflicts=[conflict_to_response(record, catalog) for record in workload.conflicts],
    )


def room_timetable_to_response(
    timetable: RoomTimetable,
    catalog: Optional[CatalogLookup] = None,
) -> RoomTimetableResponse:
    return RoomTimetableResponse(
        room_id=timetable.room_id,
        room_name=timetable.room_name,
        term=timetable.term.label,
        booked_hours=timetable.booked_hours,
        occupancy_rate=timetable.occupancy_rate,
        entries=[schedule_to_response(entry, catalog) for entry in timetable.entries],
        conflicts=[conflict_to_response(record, catalog) for record in timetable.conflicts],
    )


def availability_to_response(
    room_id: str,
    weekday: Weekday,
    term: Term,
    windows: list[AvailabilityWindow],
    catalog: Optional[CatalogLookup] = None,
) -> RoomAvailabilityResponse:
    return RoomAvailabilityResponse(
        room_id=room_id,
        room_name=lookup_display_name(catalog, "room", room_id),
        term=term.label,
        weekday=weekday.value,
        day_name=weekday.display_name,
        windows=[
            AvailabilityWindowResponse(
                start_time=format_clock_time(window.start_time),
                end_time=format_clock_time(window.end_time),
                minutes=window.duration_minutes,
                available=window.available,
                entry_id=window.entry.entry_id if window.entry is not None else None,
                subject_id=window.entry.subject_id if window.entry is not None else None,
                subject_name=(
                    lookup_display_name(catalog, "subject", window.entry.subject_id)
                    if window.entry is not None
                    else None
                ),
            )
            for window in windows
        ],
    )
