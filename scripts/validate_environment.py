#!/usr/bin/env python3
"""Validate local schedule engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sqlite3
import sys
import tempfile
from dataclasses import replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from schedule_engine.domain.models import ConflictKind, ScheduleDraft, Term, TimeSlot
from schedule_engine.repository.schedule_repository import ScheduleRepository
from schedule_engine.services.conflict_service import ConflictDetectionService
from schedule_engine.services.occupancy_service import OccupancyStatisticsService
from schedule_engine.services.schedule_service import ScheduleService
from schedule_engine.utils.config import Settings, get_settings

SEPARATOR_LINE = "=" * 44

PACKAGE_SPECS = [
    ("fastapi", "fastapi"),
    ("uvicorn", "uvicorn"),
    ("pydantic", "pydantic"),
    ("pandas", "pandas"),
    ("httpx", "httpx"),
    ("pytest", "pytest"),
]


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def run_smoke_scenario(settings: Settings) -> str:
    """Two overlapping Tuesday classes sharing a room must yield one room clash."""
    repository = ScheduleRepository(settings)
    repository.initialize_database()
    schedule_service = ScheduleService(repository=repository, settings=settings)
    conflict_service = ConflictDetectionService(
        repository=repository,
        schedule_service=schedule_service,
        settings=settings,
    )
    occupancy_service = OccupancyStatisticsService(repository=repository, settings=settings)

    term = Term(academic_year=2024, academic_period=1)
    first = schedule_service.create(
        ScheduleDraft(
            subject_id="SMOKE-S1",
            instructor_id="SMOKE-P1",
            room_id="SMOKE-R1",
            slot=TimeSlot.from_strings(2, "14:00", "16:00"),
            term=term,
        )
    )
    schedule_service.create(
        ScheduleDraft(
            subject_id="SMOKE-S2",
            instructor_id="SMOKE-P2",
            room_id="SMOKE-R1",
            slot=TimeSlot.from_strings(2, "15:00", "17:00"),
            term=term,
        )
    )

    conflicts = conflict_service.find_conflicts(first.entry_id)
    kinds = [record.kind for record in conflicts]
    if kinds != [ConflictKind.ROOM_CLASH]:
        raise RuntimeError(f"expected one ROOM_CLASH, got {[kind.value for kind in kinds]}")

    stats = occupancy_service.compute_stats(term)
    if stats.by_weekday["Tuesday"] != 2 or stats.top_rooms[0].usage_count != 2:
        raise RuntimeError("occupancy stats do not reflect the smoke entries")
    return f": {len(conflicts)} conflict, {stats.total_entries} entries"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="schedule-engine-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    import_errors: list[str] = []
    for module_name, dist_name in PACKAGE_SPECS:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        temp_db_path = Path(temp_dir) / "schedule_validation.db"
        validation_settings = replace(get_settings(), database_path=temp_db_path)

        # CHECK 3: Writable sqlite database
        try:
            with sqlite3.connect(temp_db_path) as conn:
                conn.execute("CREATE TABLE IF NOT EXISTS Probe (id INTEGER PRIMARY KEY);")
                conn.execute("DROP TABLE Probe;")
            ok, line = _print_result("SQLite database writable", True)
        except sqlite3.Error as exc:
            ok, line = _print_result("SQLite database writable", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Conflict detection smoke scenario
        try:
            detail = run_smoke_scenario(validation_settings)
            ok, line = _print_result("Conflict smoke scenario", True, detail)
        except Exception as exc:
            ok, line = _print_result("Conflict smoke scenario", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Schedule Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
