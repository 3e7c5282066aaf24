"""Schedule store contract: validation, lifecycle and paginated listing."""

from __future__ import annotations

from dataclasses import replace
from datetime import time
from typing import Any, Iterable, Mapping, Optional

from schedule_engine.domain.constraints import InvalidTimeSlotError
from schedule_engine.domain.models import (
    PageRequest,
    ScheduleDraft,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleOrdering,
    SchedulePage,
    ScheduleStatus,
    Term,
    TimeSlot,
    parse_clock_time,
)
from schedule_engine.repository.schedule_repository import (
    ScheduleRepository,
    entry_to_columns,
    new_entry_id,
    utc_now,
)
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class ScheduleError(Exception):
    """Base exception for schedule store failures."""


class ScheduleValidationError(ScheduleError):
    """Raised when a draft or update is missing fields or holds invalid values."""


class ScheduleNotFoundError(ScheduleError):
    """Raised when an operation targets an unknown entry id."""


REQUIRED_FIELDS = (
    "subject_id",
    "instructor_id",
    "weekday",
    "start_time",
    "end_time",
    "academic_year",
    "academic_period",
)
OPTIONAL_FIELDS = ("room_id", "status", "notes")
UPDATABLE_FIELDS = frozenset(REQUIRED_FIELDS + OPTIONAL_FIELDS)


def _coerce_time(name: str, value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        return parse_clock_time(value)
    raise InvalidTimeSlotError(f"{name} must be a HH:MM string or a time value")


def _coerce_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScheduleValidationError(f"{name} must be an integer")
    return value


def _coerce_identifier(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ScheduleValidationError(f"{name} must be a non-empty string")
    return value.strip()


def _coerce_status(value: Any) -> ScheduleStatus:
    try:
        return ScheduleStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in ScheduleStatus)
        raise ScheduleValidationError(f"status must be one of {allowed}") from exc


def entry_fields(entry: ScheduleEntry) -> dict[str, Any]:
    """Flat field mapping of an entry, the shape accepted by build_draft()."""
    return {
        "subject_id": entry.subject_id,
        "instructor_id": entry.instructor_id,
        "room_id": entry.room_id,
        "weekday": entry.slot.weekday,
        "start_time": entry.slot.start_time,
        "end_time": entry.slot.end_time,
        "academic_year": entry.term.academic_year,
        "academic_period": entry.term.academic_period,
        "status": entry.status,
        "notes": entry.notes,
    }


class ScheduleService:
    """Creates, reads, updates, deletes and lists schedule entries.

    Clash invariants are not checked here; callers that want a pre-flight
    check run the conflict detector before or after writing.
    """

    def __init__(
        self,
        repository: Optional[ScheduleRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ScheduleRepository(self._settings)

    def build_draft(self, fields: Mapping[str, Any]) -> ScheduleDraft:
        """Turn a flat field mapping into a validated draft."""
        missing = [name for name in REQUIRED_FIELDS if fields.get(name) is None]
        if missing:
            raise ScheduleValidationError(f"Missing required fields: {', '.join(missing)}")
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ScheduleValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        try:
            slot = TimeSlot(
                weekday=_coerce_int("weekday", fields["weekday"]),
                start_time=_coerce_time("start_time", fields["start_time"]),
                end_time=_coerce_time("end_time", fields["end_time"]),
            )
        except InvalidTimeSlotError as exc:
            raise ScheduleValidationError(str(exc)) from exc

        try:
            term = Term(
                academic_year=_coerce_int("academic_year", fields["academic_year"]),
                academic_period=_coerce_int("academic_period", fields["academic_period"]),
            )
        except ValueError as exc:
            raise ScheduleValidationError(str(exc)) from exc

        room_id = fields.get("room_id")
        status = fields.get("status")
        notes = fields.get("notes")
        draft = ScheduleDraft(
            subject_id=_coerce_identifier("subject_id", fields["subject_id"]),
            instructor_id=_coerce_identifier("instructor_id", fields["instructor_id"]),
            room_id=None if room_id is None else _coerce_identifier("room_id", room_id),
            slot=slot,
            term=term,
            status=ScheduleStatus.ACTIVE if status is None else _coerce_status(status),
            notes=notes,
        )
        self.validate_draft(draft)
        return draft

    def validate_draft(self, draft: ScheduleDraft) -> None:
        _coerce_identifier("subject_id", draft.subject_id)
        _coerce_identifier("instructor_id", draft.instructor_id)
        if draft.room_id is not None:
            _coerce_identifier("room_id", draft.room_id)
        if not isinstance(draft.slot, TimeSlot):
            raise ScheduleValidationError("slot is required")
        if not isinstance(draft.term, Term):
            raise ScheduleValidationError("term is required")
        if not isinstance(draft.status, ScheduleStatus):
            _coerce_status(draft.status)
        if draft.notes is not None and not isinstance(draft.notes, str):
            raise ScheduleValidationError("notes must be text")

        weekday_min = self._settings.weekday_min
        weekday_max = self._settings.weekday_max
        if not weekday_min <= draft.slot.weekday <= weekday_max:
            raise ScheduleValidationError(
                f"weekday must be between {weekday_min} and {weekday_max}"
            )

    def _materialize(self, draft: ScheduleDraft) -> ScheduleEntry:
        now = utc_now()
        return ScheduleEntry(
            entry_id=new_entry_id(),
            subject_id=draft.subject_id.strip(),
            instructor_id=draft.instructor_id.strip(),
            room_id=None if draft.room_id is None else draft.room_id.strip(),
            slot=draft.slot,
            term=draft.term,
            status=ScheduleStatus(draft.status),
            notes=draft.notes,
            created_at=now,
            updated_at=now,
        )

    def create(self, draft: ScheduleDraft) -> ScheduleEntry:
        self.validate_draft(draft)
        entry = self._materialize(draft)
        self._repository.insert_schedule(entry)
        logger.info(
            "Schedule created | entry_id=%s | term=%s | slot=%s | instructor_id=%s | room_id=%s",
            entry.entry_id,
            entry.term.label,
            entry.slot.label,
            entry.instructor_id,
            entry.room_id,
        )
        return entry

    def bulk_create(self, drafts: Iterable[ScheduleDraft]) -> int:
        """All-or-nothing: every draft is validated before a single write."""
        draft_list = list(drafts)
        if not draft_list:
            raise ScheduleValidationError("bulk_create requires at least one entry")
        max_entries = self._settings.bulk_create_max_entries
        if len(draft_list) > max_entries:
            raise ScheduleValidationError(
                f"bulk_create accepts at most {max_entries} entries, got {len(draft_list)}"
            )

        for index, draft in enumerate(draft_list):
            try:
                self.validate_draft(draft)
            except ScheduleValidationError as exc:
                raise ScheduleValidationError(f"entry {index}: {exc}") from exc

        entries = [self._materialize(draft) for draft in draft_list]
        created = self._repository.insert_many(entries)
        logger.info("Bulk schedule create completed | created=%s", created)
        return created

    def find_by_id(self, entry_id: str) -> Optional[ScheduleEntry]:
        return self._repository.get_schedule(entry_id)

    def get(self, entry_id: str) -> ScheduleEntry:
        entry = self._repository.get_schedule(entry_id)
        if entry is None:
            raise ScheduleNotFoundError(f"Schedule entry {entry_id} not found")
        return entry

    def update(self, entry_id: str, changes: Mapping[str, Any]) -> ScheduleEntry:
        """Apply only the supplied fields; room_id=None clears the room."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ScheduleValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        nulled = [name for name in REQUIRED_FIELDS if name in changes and changes[name] is None]
        if nulled:
            raise ScheduleValidationError(f"Required fields cannot be null: {', '.join(nulled)}")

        current = self.get(entry_id)
        merged = entry_fields(current)
        merged.update(changes)
        if "status" in changes and changes["status"] is None:
            merged["status"] = current.status
        draft = self.build_draft(merged)

        if (
            current.status is ScheduleStatus.CANCELLED
            and draft.status is ScheduleStatus.ACTIVE
        ):
            raise ScheduleValidationError(
                "Cancelled entries cannot be reactivated; create a new entry instead"
            )

        updated = ScheduleEntry(
            entry_id=current.entry_id,
            subject_id=draft.subject_id,
            instructor_id=draft.instructor_id,
            room_id=draft.room_id,
            slot=draft.slot,
            term=draft.term,
            status=draft.status,
            notes=draft.notes,
            created_at=current.created_at,
            updated_at=utc_now(),
        )
        before = entry_to_columns(current)
        after = entry_to_columns(updated)
        changed_columns = {
            column: value
            for column, value in after.items()
            if column not in {"id", "created_at"} and value != before[column]
        }
        changed_columns["updated_at"] = after["updated_at"]

        if not self._repository.update_columns(entry_id, changed_columns):
            raise ScheduleNotFoundError(f"Schedule entry {entry_id} not found")
        logger.info(
            "Schedule updated | entry_id=%s | columns=%s",
            entry_id,
            ",".join(sorted(changed_columns)),
        )
        return updated

    def cancel(self, entry_id: str) -> ScheduleEntry:
        return self.update(entry_id, {"status": ScheduleStatus.CANCELLED})

    def delete(self, entry_id: str) -> None:
        if not self._repository.delete_schedule(entry_id):
            raise ScheduleNotFoundError(f"Schedule entry {entry_id} not found")
        logger.info("Schedule deleted | entry_id=%s", entry_id)

    def _resolve_page(self, page: Optional[PageRequest]) -> PageRequest:
        if page is None:
            return PageRequest(skip=0, take=self._settings.pagination_default_take)
        max_take = self._settings.pagination_max_take
        if isinstance(page.skip, bool) or not isinstance(page.skip, int) or page.skip < 0:
            raise ScheduleValidationError("skip must be a non-negative integer")
        if isinstance(page.take, bool) or not isinstance(page.take, int):
            raise ScheduleValidationError("take must be an integer")
        if not 1 <= page.take <= max_take:
            raise ScheduleValidationError(f"take must be between 1 and {max_take}")
        return page

    def page_request(self, skip: int = 0, take: Optional[int] = None) -> PageRequest:
        """Validated page; take falls back to the configured default."""
        if take is None:
            take = self._settings.pagination_default_take
        return self._resolve_page(PageRequest(skip=skip, take=take))

    def _resolve_filters(self, filters: Optional[ScheduleFilters]) -> ScheduleFilters:
        filters = filters or ScheduleFilters()
        if filters.search is None:
            return filters
        if not isinstance(filters.search, str) or not filters.search.strip():
            raise ScheduleValidationError("search must be a non-empty string")
        return replace(filters, search=filters.search.strip())

    def list(
        self,
        filters: Optional[ScheduleFilters] = None,
        page: Optional[PageRequest] = None,
        ordering: ScheduleOrdering = ScheduleOrdering.CREATED_DESC,
    ) -> SchedulePage:
        resolved_page = self._resolve_page(page)
        items, total = self._repository.list_schedules(
            filters=self._resolve_filters(filters),
            page=resolved_page,
            ordering=ordering,
        )
        return SchedulePage(
            items=items,
            total=total,
            skip=resolved_page.skip,
            take=resolved_page.take,
        )

    def search(
        self,
        text: str,
        filters: Optional[ScheduleFilters] = None,
        page: Optional[PageRequest] = None,
    ) -> SchedulePage:
        """Entries whose subject, instructor or room name contains the text."""
        if not isinstance(text, str):
            raise ScheduleValidationError("search must be a non-empty string")
        scoped = replace(filters or ScheduleFilters(), search=text)
        result = self.list(filters=scoped, page=page, ordering=ScheduleOrdering.WEEKDAY_START)
        logger.info("Schedule search completed | text=%s | total=%s", text.strip(), result.total)
        return result
