from __future__ import annotations

import math
from dataclasses import replace
from datetime import time

import pytest

from schedule_engine.domain.models import (
    PageRequest,
    ScheduleDraft,
    ScheduleFilters,
    ScheduleOrdering,
    ScheduleStatus,
    Term,
    TimeSlot,
)
from schedule_engine.repository.catalog_repository import CatalogRepository
from schedule_engine.repository.schedule_repository import RepositoryError, ScheduleRepository
from schedule_engine.services.schedule_service import (
    ScheduleNotFoundError,
    ScheduleService,
    ScheduleValidationError,
)
from schedule_engine.utils.config import get_settings


TERM = Term(academic_year=2024, academic_period=1)


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, **overrides)


def _build_service(tmp_path, **overrides) -> tuple[ScheduleService, ScheduleRepository]:
    settings = _build_test_settings(tmp_path, "schedules.db", **overrides)
    repository = ScheduleRepository(settings)
    repository.initialize_database()
    return ScheduleService(repository=repository, settings=settings), repository


def _draft(
    subject_id: str = "S1",
    instructor_id: str = "P1",
    room_id: str | None = "R1",
    weekday: int = 1,
    start: str = "10:00",
    end: str = "11:00",
    term: Term = TERM,
) -> ScheduleDraft:
    return ScheduleDraft(
        subject_id=subject_id,
        instructor_id=instructor_id,
        room_id=room_id,
        slot=TimeSlot.from_strings(weekday, start, end),
        term=term,
    )


def test_create_assigns_identity_and_round_trips(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    created = service.create(_draft(subject_id="S-ALG"))
    fetched = service.get(created.entry_id)

    assert fetched == created
    assert created.subject_id == "S-ALG"
    assert created.status is ScheduleStatus.ACTIVE
    assert created.created_at == created.updated_at
    assert created.created_at.tzinfo is not None


def test_build_draft_reports_missing_fields(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleValidationError, match="instructor_id"):
        service.build_draft(
            {
                "subject_id": "S1",
                "weekday": 1,
                "start_time": "10:00",
                "end_time": "11:00",
                "academic_year": 2024,
                "academic_period": 1,
            }
        )


def test_build_draft_wraps_invalid_slot(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleValidationError):
        service.build_draft(
            {
                "subject_id": "S1",
                "instructor_id": "P1",
                "weekday": 1,
                "start_time": "11:00",
                "end_time": "10:00",
                "academic_year": 2024,
                "academic_period": 1,
            }
        )


def test_build_draft_wraps_invalid_term(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleValidationError):
        service.build_draft(
            {
                "subject_id": "S1",
                "instructor_id": "P1",
                "weekday": 1,
                "start_time": "10:00",
                "end_time": "11:00",
                "academic_year": 2024,
                "academic_period": 0,
            }
        )


def test_bulk_create_persists_every_entry(tmp_path) -> None:
    service, repository = _build_service(tmp_path)

    created = service.bulk_create([_draft(weekday=day) for day in range(1, 6)])

    assert created == 5
    assert repository.count_schedules() == 5


def test_bulk_create_with_one_invalid_draft_persists_nothing(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    drafts = [_draft(), _draft(subject_id="   "), _draft(weekday=2)]

    with pytest.raises(ScheduleValidationError, match="entry 1"):
        service.bulk_create(drafts)

    assert repository.count_schedules() == 0


def test_bulk_create_rejects_empty_and_oversized_batches(tmp_path) -> None:
    service, _ = _build_service(tmp_path, bulk_create_max_entries=2)

    with pytest.raises(ScheduleValidationError):
        service.bulk_create([])
    with pytest.raises(ScheduleValidationError):
        service.bulk_create([_draft(), _draft(), _draft()])


def test_insert_many_rolls_back_on_store_failure(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    first = service.create(_draft())

    # Reusing an existing id makes the second row violate the primary key.
    fresh = replace(first, entry_id="fresh-id")
    with pytest.raises(RepositoryError):
        repository.insert_many([fresh, first])

    assert repository.count_schedules() == 1
    assert repository.get_schedule("fresh-id") is None


def test_update_applies_only_supplied_fields(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft())

    updated = service.update(created.entry_id, {"notes": "bring projector"})

    assert updated.notes == "bring projector"
    assert updated.room_id == "R1"
    assert updated.slot == created.slot
    assert updated.created_at == created.created_at
    assert updated.updated_at >= created.updated_at
    assert service.get(created.entry_id) == updated


def test_update_with_null_room_clears_it(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft())

    updated = service.update(created.entry_id, {"room_id": None})

    assert updated.room_id is None
    assert service.get(created.entry_id).room_id is None


def test_update_rebuilds_and_validates_slot(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft(start="10:00", end="11:00"))

    moved = service.update(created.entry_id, {"start_time": "10:30", "end_time": "12:00"})
    assert moved.slot.duration_minutes == 90

    with pytest.raises(ScheduleValidationError):
        service.update(created.entry_id, {"start_time": "13:00"})


def test_update_rejects_unknown_and_nulled_required_fields(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft())

    with pytest.raises(ScheduleValidationError):
        service.update(created.entry_id, {"colour": "blue"})
    with pytest.raises(ScheduleValidationError):
        service.update(created.entry_id, {"instructor_id": None})


def test_update_unknown_id_raises_not_found(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleNotFoundError):
        service.update("missing", {"notes": "x"})


def test_cancelled_is_terminal(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft())

    cancelled = service.cancel(created.entry_id)
    assert cancelled.status is ScheduleStatus.CANCELLED

    with pytest.raises(ScheduleValidationError):
        service.update(created.entry_id, {"status": ScheduleStatus.ACTIVE})

    annotated = service.update(created.entry_id, {"notes": "moved online"})
    assert annotated.status is ScheduleStatus.CANCELLED
    assert annotated.notes == "moved online"


def test_second_delete_raises_not_found(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    created = service.create(_draft())

    service.delete(created.entry_id)

    with pytest.raises(ScheduleNotFoundError):
        service.delete(created.entry_id)
    assert service.find_by_id(created.entry_id) is None


def test_pagination_covers_total_exactly(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    service.bulk_create(
        [_draft(subject_id=f"S{index}", weekday=index % 7 + 1) for index in range(23)]
    )

    take = 10
    first = service.list(page=PageRequest(skip=0, take=take))
    seen: list[str] = []
    for page_number in range(first.pages):
        page = service.list(page=PageRequest(skip=page_number * take, take=take))
        assert page.page == page_number + 1
        seen.extend(item.entry_id for item in page.items)

    assert first.total == 23
    assert first.pages == math.ceil(23 / take)
    assert len(seen) == 23
    assert len(set(seen)) == 23


def test_pagination_limits_are_validated(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleValidationError):
        service.list(page=PageRequest(skip=-1, take=10))
    with pytest.raises(ScheduleValidationError):
        service.list(page=PageRequest(skip=0, take=0))
    with pytest.raises(ScheduleValidationError):
        service.list(page=PageRequest(skip=0, take=101))
    assert service.page_request().take == 10


def test_filters_narrow_results(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    service.create(_draft(instructor_id="P1", room_id="R1"))
    service.create(_draft(instructor_id="P2", room_id=None, weekday=2))
    service.create(_draft(instructor_id="P1", room_id="R2", term=Term(2024, 2)))

    by_instructor = service.list(ScheduleFilters(instructor_id="P1"))
    roomless = service.list(ScheduleFilters(has_room=False))
    in_term = service.list(ScheduleFilters(academic_year=2024, academic_period=1))

    assert by_instructor.total == 2
    assert [item.instructor_id for item in roomless.items] == ["P2"]
    assert in_term.total == 2


def test_orderings_are_deterministic(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    wednesday = service.create(_draft(weekday=3, start="09:00", end="10:00"))
    monday_late = service.create(_draft(weekday=1, start="14:00", end="15:00"))
    monday_early = service.create(_draft(weekday=1, start="08:00", end="09:00"))

    newest_first = service.list()
    oldest_first = service.list(ordering=ScheduleOrdering.CREATED_ASC)
    by_slot = service.list(ordering=ScheduleOrdering.WEEKDAY_START)

    assert [item.entry_id for item in newest_first.items] == [
        monday_early.entry_id,
        monday_late.entry_id,
        wednesday.entry_id,
    ]
    assert [item.entry_id for item in oldest_first.items] == [
        wednesday.entry_id,
        monday_late.entry_id,
        monday_early.entry_id,
    ]
    assert [item.entry_id for item in by_slot.items] == [
        monday_early.entry_id,
        monday_late.entry_id,
        wednesday.entry_id,
    ]


def test_time_window_filters_bound_start_and_end(tmp_path) -> None:
    service, _ = _build_service(tmp_path)
    service.create(_draft(subject_id="EARLY", start="08:00", end="10:00"))
    service.create(_draft(subject_id="MID", start="10:00", end="12:00"))
    service.create(_draft(subject_id="LONG", start="10:30", end="13:00"))
    service.create(_draft(subject_id="LATE", start="18:00", end="20:00"))

    def subjects(**window) -> set[str]:
        page = service.list(filters=ScheduleFilters(**window), page=PageRequest(skip=0, take=100))
        return {entry.subject_id for entry in page.items}

    assert subjects(starts_at_or_after=time(10, 0)) == {"MID", "LONG", "LATE"}
    assert subjects(ends_at_or_before=time(12, 0)) == {"EARLY", "MID"}
    assert subjects(starts_at_or_after=time(10, 0), ends_at_or_before=time(12, 0)) == {"MID"}
    assert subjects(starts_at_or_after=time(21, 0)) == set()


def test_search_matches_catalog_names_case_insensitively(tmp_path) -> None:
    service, repository = _build_service(tmp_path)
    catalog = CatalogRepository(_build_test_settings(tmp_path, "schedules.db"))
    catalog.initialize_database()
    catalog.upsert_subject("S-ALG", "Algorithms", "CS201")
    catalog.upsert_subject("S-CAL", "Calculus", "MA101")
    catalog.upsert_instructor("P-ADA", "Ada Lovelace")
    catalog.upsert_room("R-LAB", "Physics Lab")

    algorithms = service.create(_draft(subject_id="S-ALG", instructor_id="P-X", room_id=None))
    calculus = service.create(_draft(subject_id="S-CAL", instructor_id="P-ADA", room_id="R-LAB"))
    service.create(_draft(subject_id="S-UNKNOWN", instructor_id="P-Y", room_id="R-NONE"))

    def found(text: str) -> list[str]:
        return [entry.entry_id for entry in service.search(text).items]

    assert found("ALGO") == [algorithms.entry_id]
    assert found("cs201") == [algorithms.entry_id]
    assert found("lovelace") == [calculus.entry_id]
    assert found("physics") == [calculus.entry_id]
    assert found("  calc  ") == [calculus.entry_id]
    assert found("50%") == []
    assert found("_") == []

    scoped = repository.list_all(ScheduleFilters(search="a", room_id="R-LAB"))
    assert [entry.entry_id for entry in scoped] == [calculus.entry_id]


def test_blank_search_is_rejected(tmp_path) -> None:
    service, _ = _build_service(tmp_path)

    with pytest.raises(ScheduleValidationError):
        service.search("   ")
    with pytest.raises(ScheduleValidationError):
        service.list(filters=ScheduleFilters(search=""))
