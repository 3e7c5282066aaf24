"""Weekly, instructor and room views over a term's active schedule."""

from __future__ import annotations

from collections import defaultdict
from datetime import time
from typing import Optional

from schedule_engine.domain.models import (
    AvailabilityWindow,
    ConflictKind,
    ConflictRecord,
    InstructorWorkload,
    RoomTimetable,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleStatus,
    SubjectLoad,
    Term,
    Weekday,
    parse_clock_time,
)
from schedule_engine.repository.catalog_repository import CatalogLookup, lookup_display_name
from schedule_engine.repository.schedule_repository import RepositoryError, ScheduleRepository
from schedule_engine.services.conflict_service import ConflictDetectionError, ConflictDetectionService
from schedule_engine.services.schedule_service import ScheduleValidationError
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


def _hours(entries: list[ScheduleEntry]) -> float:
    return round(sum(entry.slot.duration_minutes for entry in entries) / 60.0, 2)


def operating_window(settings: Settings) -> tuple[time, time]:
    """Daily opening and closing time of every room."""
    opening = parse_clock_time(settings.room_opening_time)
    closing = parse_clock_time(settings.room_closing_time)
    if opening >= closing:
        raise ValueError("room_opening_time must be earlier than room_closing_time")
    return opening, closing


class TimetableService:
    def __init__(
        self,
        repository: Optional[ScheduleRepository] = None,
        conflict_service: Optional[ConflictDetectionService] = None,
        catalog: Optional[CatalogLookup] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ScheduleRepository(self._settings)
        self._catalog = catalog
        self._opening, self._closing = operating_window(self._settings)
        self._conflict_service = conflict_service or ConflictDetectionService(
            repository=self._repository,
            catalog=catalog,
            settings=self._settings,
        )

    def _active_entries(
        self,
        term: Term,
        instructor_id: Optional[str] = None,
        room_id: Optional[str] = None,
        weekday: Optional[int] = None,
    ) -> list[ScheduleEntry]:
        filters = ScheduleFilters(
            instructor_id=instructor_id,
            room_id=room_id,
            weekday=weekday,
            academic_year=term.academic_year,
            academic_period=term.academic_period,
            status=ScheduleStatus.ACTIVE,
        )
        try:
            return self._repository.list_all(filters)
        except RepositoryError as exc:
            logger.error("Timetable read failed | term=%s | error=%s", term.label, exc)
            raise ConflictDetectionError(
                f"Could not load schedule entries for term {term.label}"
            ) from exc

    def weekly_timetable(
        self,
        term: Term,
        instructor_id: Optional[str] = None,
        room_id: Optional[str] = None,
    ) -> dict[str, list[ScheduleEntry]]:
        """Active entries under every day name, each day in start-time order."""
        week: dict[str, list[ScheduleEntry]] = {day.display_name: [] for day in Weekday}
        for entry in self._active_entries(term, instructor_id=instructor_id, room_id=room_id):
            week[entry.slot.day_name].append(entry)
        for day_entries in week.values():
            day_entries.sort(key=lambda entry: (entry.slot.start_time, entry.slot.end_time))
        return week

    def _term_clashes(self, term: Term, kind: ConflictKind, shared_id: str) -> list[ConflictRecord]:
        """Term clashes of one kind on a single instructor or room."""
        attribute = "instructor_id" if kind is ConflictKind.INSTRUCTOR_CLASH else "room_id"
        return [
            record
            for record in self._conflict_service.detect_term_conflicts(term)
            if record.kind is kind and getattr(record.entry, attribute) == shared_id
        ]

    def instructor_workload(self, instructor_id: str, term: Term) -> InstructorWorkload:
        entries = self._active_entries(term, instructor_id=instructor_id)
        by_subject: dict[str, list[ScheduleEntry]] = defaultdict(list)
        for entry in entries:
            by_subject[entry.subject_id].append(entry)

        subjects = [
            SubjectLoad(
                subject_id=subject_id,
                weekly_hours=_hours(subject_entries),
                entries=subject_entries,
                subject_name=lookup_display_name(self._catalog, "subject", subject_id),
            )
            for subject_id, subject_entries in sorted(by_subject.items())
        ]
        conflicts = self._term_clashes(term, ConflictKind.INSTRUCTOR_CLASH, instructor_id)
        workload = InstructorWorkload(
            instructor_id=instructor_id,
            term=term,
            total_weekly_hours=_hours(entries),
            subjects=subjects,
            conflicts=conflicts,
            instructor_name=lookup_display_name(self._catalog, "instructor", instructor_id),
        )
        logger.info(
            "Instructor workload computed | instructor_id=%s | term=%s | hours=%s | conflicts=%s",
            instructor_id,
            term.label,
            workload.total_weekly_hours,
            len(conflicts),
        )
        return workload

    def room_timetable(self, room_id: str, term: Term) -> RoomTimetable:
        entries = self._active_entries(term, room_id=room_id)
        booked_hours = _hours(entries)
        operating_hours = self._settings.room_operating_hours_per_week
        occupancy_rate = booked_hours / operating_hours if operating_hours > 0 else 0.0
        conflicts = self._term_clashes(term, ConflictKind.ROOM_CLASH, room_id)
        timetable = RoomTimetable(
            room_id=room_id,
            term=term,
            booked_hours=booked_hours,
            occupancy_rate=occupancy_rate,
            entries=entries,
            conflicts=conflicts,
            room_name=lookup_display_name(self._catalog, "room", room_id),
        )
        logger.info(
            "Room timetable computed | room_id=%s | term=%s | booked_hours=%s | occupancy_rate=%.4f",
            room_id,
            term.label,
            booked_hours,
            timetable.occupancy_rate,
        )
        return timetable

    def room_availability(self, room_id: str, weekday: int, term: Term) -> list[AvailabilityWindow]:
        """Free and busy windows of one room across its operating day.

        Busy windows follow the room's active entries in start order, clipped
        to opening hours. Two clashing entries yield overlapping busy windows;
        free windows never overlap anything.
        """
        if not isinstance(room_id, str) or not room_id.strip():
            raise ScheduleValidationError("room_id must be a non-empty string")
        if isinstance(weekday, bool) or weekday not in {day.value for day in Weekday}:
            raise ScheduleValidationError("weekday must be between 1 and 7")

        windows: list[AvailabilityWindow] = []
        cursor = self._opening
        for entry in self._active_entries(term, room_id=room_id.strip(), weekday=weekday):
            start = max(entry.slot.start_time, self._opening)
            end = min(entry.slot.end_time, self._closing)
            if start >= end:
                continue
            if cursor < start:
                windows.append(AvailabilityWindow(start_time=cursor, end_time=start, available=True))
            windows.append(
                AvailabilityWindow(start_time=start, end_time=end, available=False, entry=entry)
            )
            cursor = max(cursor, end)
        if cursor < self._closing:
            windows.append(AvailabilityWindow(start_time=cursor, end_time=self._closing, available=True))

        logger.info(
            "Room availability computed | room_id=%s | weekday=%s | term=%s | free_windows=%s",
            room_id,
            weekday,
            term.label,
            sum(1 for window in windows if window.available),
        )
        return windows
