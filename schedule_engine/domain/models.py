"""Domain models for recurring weekly class schedules."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, time
from enum import Enum, IntEnum
from typing import Optional, Union

from schedule_engine.domain.constraints import InvalidTimeSlotError, validate_time_slot


class Weekday(IntEnum):
    """ISO 8601 numbering: Monday is 1, Sunday is 7."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


class ScheduleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class ConflictKind(str, Enum):
    INSTRUCTOR_CLASH = "INSTRUCTOR_CLASH"
    ROOM_CLASH = "ROOM_CLASH"


CLOCK_FORMAT = "%H:%M"


def parse_clock_time(value: str) -> time:
    try:
        return datetime.strptime(value, CLOCK_FORMAT).time()
    except (TypeError, ValueError) as exc:
        raise InvalidTimeSlotError(f"time must follow HH:MM format, got {value!r}") from exc


def format_clock_time(value: time) -> str:
    return value.strftime(CLOCK_FORMAT)


@dataclass(frozen=True)
class TimeSlot:
    weekday: int
    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        validate_time_slot(self.weekday, self.start_time, self.end_time)

    @classmethod
    def from_strings(cls, weekday: int, start_time: str, end_time: str) -> "TimeSlot":
        return cls(
            weekday=weekday,
            start_time=parse_clock_time(start_time),
            end_time=parse_clock_time(end_time),
        )

    @property
    def day_name(self) -> str:
        return Weekday(self.weekday).display_name

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    @property
    def label(self) -> str:
        return (
            f"{self.day_name} "
            f"{format_clock_time(self.start_time)}-{format_clock_time(self.end_time)}"
        )


@dataclass(frozen=True)
class Term:
    academic_year: int
    academic_period: int

    def __post_init__(self) -> None:
        if isinstance(self.academic_year, bool) or not isinstance(self.academic_year, int):
            raise ValueError("academic_year must be an integer")
        if isinstance(self.academic_period, bool) or not isinstance(self.academic_period, int):
            raise ValueError("academic_period must be an integer")
        if not 1900 <= self.academic_year <= 9999:
            raise ValueError("academic_year must be between 1900 and 9999")
        if self.academic_period < 1:
            raise ValueError("academic_period must be >= 1")

    @property
    def label(self) -> str:
        return f"{self.academic_year}/{self.academic_period}"


@dataclass(frozen=True)
class ScheduleDraft:
    """Schedule entry that has not been persisted yet."""

    subject_id: str
    instructor_id: str
    slot: TimeSlot
    term: Term
    room_id: Optional[str] = None
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    notes: Optional[str] = None


@dataclass(frozen=True)
class ScheduleEntry:
    entry_id: str
    subject_id: str
    instructor_id: str
    room_id: Optional[str]
    slot: TimeSlot
    term: Term
    status: ScheduleStatus
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status is ScheduleStatus.ACTIVE


ScheduleLike = Union[ScheduleDraft, ScheduleEntry]


@dataclass(frozen=True)
class ConflictRecord:
    kind: ConflictKind
    description: str
    entry_id: Optional[str]
    other_entry_id: str
    entry: ScheduleLike
    other_entry: ScheduleEntry


@dataclass(frozen=True)
class CatalogRecord:
    """Display data for a subject, instructor or room owned by the catalog."""

    record_id: str
    name: str
    code: Optional[str] = None
    capacity: Optional[int] = None


@dataclass(frozen=True)
class ScheduleFilters:
    subject_id: Optional[str] = None
    instructor_id: Optional[str] = None
    room_id: Optional[str] = None
    has_room: Optional[bool] = None
    weekday: Optional[int] = None
    academic_year: Optional[int] = None
    academic_period: Optional[int] = None
    status: Optional[ScheduleStatus] = None
    starts_at_or_after: Optional[time] = None
    ends_at_or_before: Optional[time] = None
    # Case-insensitive match on subject name or code, instructor name, room name.
    search: Optional[str] = None

    @classmethod
    def active_in_term(cls, term: Term) -> "ScheduleFilters":
        return cls(
            academic_year=term.academic_year,
            academic_period=term.academic_period,
            status=ScheduleStatus.ACTIVE,
        )


class ScheduleOrdering(str, Enum):
    CREATED_DESC = "created_desc"
    CREATED_ASC = "created_asc"
    UPDATED_DESC = "updated_desc"
    WEEKDAY_START = "weekday_start"


@dataclass(frozen=True)
class PageRequest:
    skip: int = 0
    take: int = 10


@dataclass(frozen=True)
class SchedulePage:
    items: list[ScheduleEntry]
    total: int
    skip: int
    take: int

    @property
    def page(self) -> int:
        return self.skip // self.take + 1

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.take)


@dataclass(frozen=True)
class RoomUsage:
    room_id: str
    usage_count: int
    utilization: float
    room_name: Optional[str] = None


@dataclass(frozen=True)
class OccupancyStats:
    term: Optional[Term]
    total_entries: int
    by_weekday: dict[str, int]
    by_hour: dict[str, int]
    top_rooms: list[RoomUsage]
    rooms_in_use: int
    overall_utilization: float
    instructors_active: int
    subjects_scheduled: int
    weekly_hours: float
    slot_capacity_per_room_per_week: int


@dataclass(frozen=True)
class SubjectLoad:
    subject_id: str
    weekly_hours: float
    entries: list[ScheduleEntry]
    subject_name: Optional[str] = None


@dataclass(frozen=True)
class InstructorWorkload:
    instructor_id: str
    term: Term
    total_weekly_hours: float
    subjects: list[SubjectLoad]
    conflicts: list[ConflictRecord] = field(default_factory=list)
    instructor_name: Optional[str] = None


@dataclass(frozen=True)
class RoomTimetable:
    room_id: str
    term: Term
    booked_hours: float
    occupancy_rate: float
    entries: list[ScheduleEntry]
    conflicts: list[ConflictRecord] = field(default_factory=list)
    room_name: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityWindow:
    """A free or busy stretch of one room's operating day."""

    start_time: time
    end_time: time
    available: bool
    entry: Optional[ScheduleEntry] = None

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start
