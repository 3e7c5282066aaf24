from __future__ import annotations

from dataclasses import fields, replace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import create_app
from schedule_engine.controllers.occupancy_controller import router as occupancy_router
from schedule_engine.controllers.schemas import (
    ScheduleResponse,
    response_to_fields,
    schedule_to_response,
)
from schedule_engine.domain.models import ScheduleDraft, ScheduleEntry, Term, TimeSlot
from schedule_engine.repository.schedule_repository import RepositoryError, ScheduleRepository
from schedule_engine.services.schedule_service import ScheduleService
from schedule_engine.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str, seed_demo_data: bool = False):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, seed_demo_data=seed_demo_data)


def _payload(**overrides) -> dict:
    body = {
        "subject_id": "S1",
        "instructor_id": "P1",
        "room_id": "R1",
        "weekday": 2,
        "start_time": "14:00",
        "end_time": "16:00",
        "academic_year": 2024,
        "academic_period": 1,
    }
    body.update(overrides)
    return body


def test_schedule_lifecycle_over_http(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_lifecycle.db"))

    with TestClient(app) as client:
        created = client.post("/schedules", json=_payload(room_id=None))
        assert created.status_code == 201
        body = created.json()
        entry_id = body["entry_id"]
        assert body["room_id"] is None
        assert body["day_name"] == "Tuesday"
        assert body["term"] == "2024/1"
        assert body["status"] == "ACTIVE"

        fetched = client.get(f"/schedules/{entry_id}")
        assert fetched.status_code == 200
        assert fetched.json() == body

        with_room = client.patch(f"/schedules/{entry_id}", json={"room_id": "R7"})
        assert with_room.status_code == 200
        assert with_room.json()["room_id"] == "R7"

        noted = client.patch(f"/schedules/{entry_id}", json={"notes": "lab week"})
        assert noted.json()["room_id"] == "R7"
        assert noted.json()["notes"] == "lab week"

        cleared = client.patch(f"/schedules/{entry_id}", json={"room_id": None})
        assert cleared.json()["room_id"] is None

        deleted = client.delete(f"/schedules/{entry_id}")
        assert deleted.status_code == 204
        assert client.delete(f"/schedules/{entry_id}").status_code == 404
        assert client.get(f"/schedules/{entry_id}").status_code == 404


def test_validation_errors_map_to_400_and_422(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_validation.db"))

    with TestClient(app) as client:
        inverted = client.post("/schedules", json=_payload(start_time="16:00", end_time="14:00"))
        assert inverted.status_code == 400

        bad_weekday = client.post("/schedules", json=_payload(weekday=8))
        assert bad_weekday.status_code == 400

        bad_term = client.post("/schedules", json=_payload(academic_period=0))
        assert bad_term.status_code == 400

        malformed = client.post("/schedules", json=_payload(start_time="9am"))
        assert malformed.status_code == 422

        missing = client.post("/schedules", json={"subject_id": "S1"})
        assert missing.status_code == 422

        assert client.get("/schedules", params={"take": 0}).status_code == 400
        assert client.get("/schedules", params={"take": 101}).status_code == 400
        assert client.patch("/schedules/unknown", json={"notes": "x"}).status_code == 404


def test_cancelled_entry_cannot_be_reactivated_over_http(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_cancel.db"))

    with TestClient(app) as client:
        entry_id = client.post("/schedules", json=_payload()).json()["entry_id"]

        cancelled = client.patch(f"/schedules/{entry_id}", json={"status": "CANCELLED"})
        assert cancelled.json()["status"] == "CANCELLED"

        reactivated = client.patch(f"/schedules/{entry_id}", json={"status": "ACTIVE"})
        assert reactivated.status_code == 400


def test_bulk_create_is_all_or_nothing_over_http(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_bulk.db"))

    with TestClient(app) as client:
        rejected = client.post(
            "/schedules/bulk",
            json={"entries": [_payload(), _payload(start_time="17:00", end_time="15:00")]},
        )
        assert rejected.status_code == 400
        assert "entry 1" in rejected.json()["detail"]
        assert client.get("/schedules").json()["total"] == 0

        assert client.post("/schedules/bulk", json={"entries": []}).status_code == 400

        accepted = client.post(
            "/schedules/bulk",
            json={"entries": [_payload(), _payload(weekday=3), _payload(room_id=None)]},
        )
        assert accepted.status_code == 201
        assert accepted.json() == {"created": 3}


def test_list_filters_and_paginates(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_list.db"))

    with TestClient(app) as client:
        client.post(
            "/schedules/bulk",
            json={
                "entries": [
                    _payload(weekday=day % 7 + 1, room_id=None if day % 3 == 0 else "R1")
                    for day in range(12)
                ]
            },
        )

        first = client.get("/schedules", params={"take": 5}).json()
        assert first["total"] == 12
        assert first["pages"] == 3
        assert len(first["items"]) == 5

        last = client.get("/schedules", params={"skip": 10, "take": 5}).json()
        assert last["page"] == 3
        assert len(last["items"]) == 2

        roomless = client.get("/schedules", params={"has_room": "false"}).json()
        assert roomless["total"] == 4
        assert all(item["room_id"] is None for item in roomless["items"])

        active = client.get("/schedules", params={"status": "ACTIVE", "ordering": "weekday_start"})
        weekdays = [item["weekday"] for item in active.json()["items"]]
        assert weekdays == sorted(weekdays)


def test_conflict_routes(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_conflicts.db"))

    with TestClient(app) as client:
        e1 = client.post("/schedules", json=_payload(instructor_id="P1")).json()
        e4 = client.post(
            "/schedules",
            json=_payload(instructor_id="P2", start_time="15:00", end_time="17:00"),
        ).json()

        found = client.get(f"/conflicts/schedules/{e1['entry_id']}")
        assert found.status_code == 200
        body = found.json()
        assert body["has_conflicts"] is True
        assert [(item["kind"], item["other_entry_id"]) for item in body["conflicts"]] == [
            ("ROOM_CLASH", e4["entry_id"])
        ]

        proposed = client.post(
            "/conflicts/check",
            json=_payload(instructor_id="P2", room_id="R9", start_time="16:00", end_time="18:00"),
        ).json()
        assert [item["kind"] for item in proposed["conflicts"]] == ["INSTRUCTOR_CLASH"]
        assert proposed["conflicts"][0]["entry_id"] is None
        proposed_side = proposed["conflicts"][0]["entry"]
        assert "entry_id" not in proposed_side
        assert proposed_side["instructor_id"] == "P2"
        assert proposed_side["room_id"] == "R9"
        assert (proposed_side["start_time"], proposed_side["end_time"]) == ("16:00", "18:00")
        assert proposed_side["day_name"] == "Tuesday"
        assert proposed["conflicts"][0]["other_entry"]["entry_id"] == e4["entry_id"]

        term_wide = client.get("/conflicts", params={"academic_year": 2024, "academic_period": 1})
        assert len(term_wide.json()["conflicts"]) == 1

        assert client.get("/conflicts/schedules/unknown").status_code == 404
        invalid_term = {"academic_year": 2024, "academic_period": 0}
        assert client.get("/conflicts", params=invalid_term).status_code == 400


def test_conflict_scan_store_failure_maps_to_503(tmp_path, monkeypatch) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_conflicts_503.db"))

    with TestClient(app) as client:
        entry_id = client.post("/schedules", json=_payload()).json()["entry_id"]

        def failing_list_all(*args, **kwargs):
            raise RepositoryError("database is locked")

        monkeypatch.setattr(app.state.repository, "list_all", failing_list_all)

        response = client.get(f"/conflicts/schedules/{entry_id}")
        assert response.status_code == 503


def test_occupancy_routes(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_occupancy.db"))

    with TestClient(app) as client:
        client.post("/schedules", json=_payload(instructor_id="P1"))
        client.post(
            "/schedules",
            json=_payload(instructor_id="P2", start_time="15:00", end_time="17:00"),
        )
        term = {"academic_year": 2024, "academic_period": 1}

        stats = client.get("/occupancy/stats", params=term).json()
        assert stats["term"] == "2024/1"
        assert stats["by_weekday"]["Tuesday"] == 2
        assert stats["top_rooms"][0]["room_id"] == "R1"
        assert stats["top_rooms"][0]["usage_count"] == 2

        assert client.get("/occupancy/stats").json()["term"] is None
        assert client.get("/occupancy/stats", params={"academic_year": 2024}).status_code == 400

        weekly = client.get("/occupancy/weekly", params=term).json()
        assert len(weekly["days"]) == 7
        assert [item["start_time"] for item in weekly["days"]["Tuesday"]] == ["14:00", "15:00"]

        workload = client.get("/occupancy/instructors/P1/workload", params=term).json()
        assert workload["total_weekly_hours"] == 2.0
        assert workload["conflicts"] == []

        room = client.get("/occupancy/rooms/R1", params=term).json()
        assert room["booked_hours"] == 4.0
        assert [item["kind"] for item in room["conflicts"]] == ["ROOM_CLASH"]


def test_demo_seed_on_startup_exposes_catalog_names(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_demo.db", seed_demo_data=True))

    with TestClient(app) as client:
        listing = client.get("/schedules", params={"take": 100}).json()
        assert listing["total"] == 7
        named = [item for item in listing["items"] if item["room_id"] == "ROOM-A"]
        assert named[0]["room_name"] == "Room A"
        assert named[0]["instructor_name"] == "Ada Lovelace"

        term = {"academic_year": 2024, "academic_period": 1}
        conflicts = client.get("/conflicts", params=term).json()
        assert [item["kind"] for item in conflicts["conflicts"]] == ["ROOM_CLASH"]
        assert "Room C" in conflicts["conflicts"][0]["description"]


def test_health_and_missing_service(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_health.db"))
    with TestClient(app) as client:
        assert client.get("/health").json()["status"] == "ok"

    bare = FastAPI()
    bare.include_router(occupancy_router)
    with TestClient(bare) as client:
        response = client.get("/occupancy/stats")
        assert response.status_code == 503


def test_schedule_mapping_round_trips_every_field(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "mapping.db")
    repository = ScheduleRepository(settings)
    repository.initialize_database()
    service = ScheduleService(repository=repository, settings=settings)
    entry = service.create(
        ScheduleDraft(
            subject_id="S1",
            instructor_id="P1",
            room_id=None,
            slot=TimeSlot.from_strings(4, "09:15", "10:45"),
            term=Term(academic_year=2025, academic_period=2),
            notes="bring laptops",
        )
    )

    response = schedule_to_response(entry)
    rebuilt = service.build_draft(response_to_fields(response))

    assert "room_id" in response.model_dump()
    assert rebuilt.subject_id == entry.subject_id
    assert rebuilt.instructor_id == entry.instructor_id
    assert rebuilt.room_id == entry.room_id
    assert rebuilt.slot == entry.slot
    assert rebuilt.term == entry.term
    assert rebuilt.status == entry.status
    assert rebuilt.notes == entry.notes
    assert response.entry_id == entry.entry_id
    assert response.created_at == entry.created_at
    assert response.updated_at == entry.updated_at

    flattened = {"slot", "term"}
    entry_fields = {item.name for item in fields(ScheduleEntry)} - flattened
    assert entry_fields <= set(ScheduleResponse.model_fields)


def test_listing_time_window_and_search_filters(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_filters.db", seed_demo_data=True))

    with TestClient(app) as client:
        window = client.get(
            "/schedules",
            params={"starts_at_or_after": "10:00", "ends_at_or_before": "12:00"},
        ).json()
        assert window["total"] == 2
        assert {item["subject_id"] for item in window["items"]} == {"SUBJ-CAL"}

        evening = client.get("/schedules", params={"starts_at_or_after": "19:00"}).json()
        assert [item["subject_id"] for item in evening["items"]] == ["SUBJ-OSY"]

        bad_clock = client.get("/schedules", params={"starts_at_or_after": "7pm"})
        assert bad_clock.status_code == 400

        by_instructor = client.get("/schedules", params={"search": "codd"}).json()
        assert [item["subject_id"] for item in by_instructor["items"]] == ["SUBJ-DBS"]

        by_code = client.get("/schedules", params={"search": "CS3"}).json()
        assert by_code["total"] == 3

        by_room = client.get("/schedules", params={"search": "room c", "weekday": 2}).json()
        assert by_room["total"] == 2

        searched = client.get("/schedules/search", params={"q": "Algorithms"}).json()
        assert searched["total"] == 2
        assert [item["day_name"] for item in searched["items"]] == ["Monday", "Wednesday"]

        assert client.get("/schedules/search", params={"q": "   "}).status_code == 400
        assert client.get("/schedules/search").status_code == 422


def test_room_availability_route(tmp_path) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_availability.db", seed_demo_data=True))
    params = {"weekday": 2, "academic_year": 2024, "academic_period": 1}

    with TestClient(app) as client:
        response = client.get("/occupancy/rooms/ROOM-C/availability", params=params)
        assert response.status_code == 200
        body = response.json()
        assert body["room_name"] == "Room C"
        assert body["day_name"] == "Tuesday"
        assert [
            (item["start_time"], item["end_time"], item["available"]) for item in body["windows"]
        ] == [
            ("07:00", "14:00", True),
            ("14:00", "16:00", False),
            ("15:00", "17:00", False),
            ("17:00", "22:00", True),
        ]
        assert body["windows"][1]["subject_name"] == "Database Systems"
        assert body["windows"][0]["entry_id"] is None

        free_day = client.get("/occupancy/rooms/ROOM-C/availability", params={**params, "weekday": 6})
        assert [item["minutes"] for item in free_day.json()["windows"]] == [15 * 60]

        bad_day = client.get("/occupancy/rooms/ROOM-C/availability", params={**params, "weekday": 8})
        assert bad_day.status_code == 400


def test_timetable_store_failure_maps_to_503(tmp_path, monkeypatch) -> None:
    app = create_app(_build_test_settings(tmp_path, "api_timetable_503.db"))
    term = {"academic_year": 2024, "academic_period": 1}

    with TestClient(app) as client:
        client.post("/schedules", json=_payload())

        def failing_list_all(*args, **kwargs):
            raise RepositoryError("database is locked")

        monkeypatch.setattr(app.state.repository, "list_all", failing_list_all)

        assert client.get("/occupancy/weekly", params=term).status_code == 503
        assert client.get("/occupancy/rooms/R1", params=term).status_code == 503
        assert client.get("/occupancy/instructors/P1/workload", params=term).status_code == 503
        availability = client.get("/occupancy/rooms/R1/availability", params={**term, "weekday": 2})
        assert availability.status_code == 503
