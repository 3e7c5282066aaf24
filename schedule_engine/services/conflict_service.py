"""Instructor and room clash detection over a term's active entries.

Each call is a linear scan of the target term's ACTIVE entries, fetched
through the store's own filtering. Weekly schedules stay small enough
that no extra index is kept.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from schedule_engine.domain.constraints import overlaps
from schedule_engine.domain.models import (
    ConflictKind,
    ConflictRecord,
    ScheduleDraft,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleLike,
    ScheduleStatus,
    Term,
)
from schedule_engine.repository.catalog_repository import CatalogLookup, lookup_display_name
from schedule_engine.repository.schedule_repository import RepositoryError, ScheduleRepository
from schedule_engine.services.schedule_service import ScheduleNotFoundError, ScheduleService
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class ConflictDetectionError(Exception):
    """Raised when a scan cannot complete because the store failed."""


_KIND_ORDER = {ConflictKind.INSTRUCTOR_CLASH: 0, ConflictKind.ROOM_CLASH: 1}


def _is_active(item: ScheduleLike) -> bool:
    return ScheduleStatus(item.status) is ScheduleStatus.ACTIVE


def _conflict_sort_key(record: ConflictRecord) -> tuple:
    other = record.other_entry
    return (
        other.slot.weekday,
        other.slot.start_time,
        other.entry_id,
        _KIND_ORDER[record.kind],
    )


def detect_clashes(
    target: ScheduleLike,
    candidates: Iterable[ScheduleEntry],
    *,
    exclude_id: Optional[str] = None,
    describe: Optional[Callable[[ConflictKind, ScheduleLike, ScheduleEntry], str]] = None,
) -> list[ConflictRecord]:
    """Compare one entry or draft against candidates.

    An instructor clash and a room clash against the same candidate are
    reported as two separate records. Cancelled entries never clash.
    """
    if not _is_active(target):
        return []

    target_id = target.entry_id if isinstance(target, ScheduleEntry) else None
    excluded = exclude_id if exclude_id is not None else target_id
    records: list[ConflictRecord] = []
    for candidate in candidates:
        if excluded is not None and candidate.entry_id == excluded:
            continue
        if not _is_active(candidate) or candidate.term != target.term:
            continue
        if not overlaps(target.slot, candidate.slot):
            continue

        kinds: list[ConflictKind] = []
        if candidate.instructor_id == target.instructor_id:
            kinds.append(ConflictKind.INSTRUCTOR_CLASH)
        if target.room_id is not None and candidate.room_id == target.room_id:
            kinds.append(ConflictKind.ROOM_CLASH)

        for kind in kinds:
            description = (describe or _default_description)(kind, target, candidate)
            records.append(
                ConflictRecord(
                    kind=kind,
                    description=description,
                    entry_id=target_id,
                    other_entry_id=candidate.entry_id,
                    entry=target,
                    other_entry=candidate,
                )
            )
    records.sort(key=_conflict_sort_key)
    return records


def _default_description(kind: ConflictKind, target: ScheduleLike, other: ScheduleEntry) -> str:
    if kind is ConflictKind.INSTRUCTOR_CLASH:
        return (
            f"Instructor {target.instructor_id} is also teaching "
            f"{other.subject_id} on {other.slot.label}"
        )
    return f"Room {target.room_id} is also booked for {other.subject_id} on {other.slot.label}"


class ConflictDetectionService:
    """Finds clashes for stored entries, proposed drafts, and whole terms."""

    def __init__(
        self,
        repository: Optional[ScheduleRepository] = None,
        schedule_service: Optional[ScheduleService] = None,
        catalog: Optional[CatalogLookup] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ScheduleRepository(self._settings)
        self._schedule_service = schedule_service or ScheduleService(
            repository=self._repository,
            settings=self._settings,
        )
        self._catalog = catalog

    def _display(self, kind: str, record_id: str) -> str:
        return lookup_display_name(self._catalog, kind, record_id) or record_id

    def _describe(self, kind: ConflictKind, target: ScheduleLike, other: ScheduleEntry) -> str:
        subject = self._display("subject", other.subject_id)
        if kind is ConflictKind.INSTRUCTOR_CLASH:
            instructor = self._display("instructor", target.instructor_id)
            return f"Instructor {instructor} is also teaching {subject} on {other.slot.label}"
        room_id = target.room_id or ""
        room = lookup_display_name(self._catalog, "room", room_id) or f"Room {room_id}"
        return f"{room} is also booked for {subject} on {other.slot.label}"

    def _load_term_candidates(self, term: Term) -> list[ScheduleEntry]:
        try:
            return self._repository.list_all(ScheduleFilters.active_in_term(term))
        except RepositoryError as exc:
            logger.error("Conflict scan failed | term=%s | error=%s", term.label, exc)
            raise ConflictDetectionError(
                f"Could not load schedule entries for term {term.label}"
            ) from exc

    def find_conflicts(self, entry_id: str) -> list[ConflictRecord]:
        try:
            target = self._schedule_service.find_by_id(entry_id)
        except RepositoryError as exc:
            raise ConflictDetectionError(f"Could not load schedule entry {entry_id}") from exc
        if target is None:
            raise ScheduleNotFoundError(f"Schedule entry {entry_id} not found")
        if not target.is_active:
            return []

        candidates = self._load_term_candidates(target.term)
        records = detect_clashes(target, candidates, describe=self._describe)
        logger.info(
            "Conflict scan completed | entry_id=%s | term=%s | scanned=%s | conflicts=%s",
            entry_id,
            target.term.label,
            len(candidates),
            len(records),
        )
        return records

    def check_proposed(self, draft: ScheduleDraft) -> list[ConflictRecord]:
        """Pre-flight check for a draft that has not been written yet."""
        self._schedule_service.validate_draft(draft)
        if not _is_active(draft):
            return []
        candidates = self._load_term_candidates(draft.term)
        records = detect_clashes(draft, candidates, describe=self._describe)
        logger.info(
            "Proposed entry check completed | term=%s | slot=%s | conflicts=%s",
            draft.term.label,
            draft.slot.label,
            len(records),
        )
        return records

    def detect_term_conflicts(self, term: Term) -> list[ConflictRecord]:
        """Every clash in a term, each unordered pair reported once per kind."""
        candidates = self._load_term_candidates(term)
        records: list[ConflictRecord] = []
        for index, target in enumerate(candidates):
            later = candidates[index + 1 :]
            records.extend(detect_clashes(target, later, describe=self._describe))
        records.sort(
            key=lambda record: (
                record.entry.slot.weekday,
                record.entry.slot.start_time,
                record.entry_id or "",
                _conflict_sort_key(record),
            )
        )
        logger.info(
            "Term conflict scan completed | term=%s | scanned=%s | conflicts=%s",
            term.label,
            len(candidates),
            len(records),
        )
        return records
