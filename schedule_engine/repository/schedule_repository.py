"""Repository layer responsible for schedule persistence."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Sequence
from uuid import uuid4

from schedule_engine.domain.models import (
    PageRequest,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleOrdering,
    ScheduleStatus,
    Term,
    TimeSlot,
    format_clock_time,
    parse_clock_time,
)
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(RuntimeError):
    """Raised when the backing store cannot complete an operation."""


_SELECT_COLUMNS = """
    Schedules.id AS id,
    Schedules.subject_id AS subject_id,
    Schedules.instructor_id AS instructor_id,
    Schedules.room_id AS room_id,
    Schedules.weekday AS weekday,
    Schedules.start_time AS start_time,
    Schedules.end_time AS end_time,
    Schedules.academic_year AS academic_year,
    Schedules.academic_period AS academic_period,
    Schedules.status AS status,
    Schedules.notes AS notes,
    Schedules.created_at AS created_at,
    Schedules.updated_at AS updated_at
"""

_ORDER_BY = {
    ScheduleOrdering.CREATED_DESC: "Schedules.created_at DESC, Schedules.rowid DESC",
    ScheduleOrdering.CREATED_ASC: "Schedules.created_at ASC, Schedules.rowid ASC",
    ScheduleOrdering.UPDATED_DESC: "Schedules.updated_at DESC, Schedules.rowid DESC",
    ScheduleOrdering.WEEKDAY_START: "Schedules.weekday ASC, Schedules.start_time ASC, Schedules.rowid ASC",
}

# Columns a partial update may touch; id and created_at never change.
_UPDATABLE_COLUMNS = frozenset(
    {
        "subject_id",
        "instructor_id",
        "room_id",
        "weekday",
        "start_time",
        "end_time",
        "academic_year",
        "academic_period",
        "status",
        "notes",
        "updated_at",
    }
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed width keeps lexical ORDER BY equal to chronological order.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def new_entry_id() -> str:
    return str(uuid4())


def entry_to_columns(entry: ScheduleEntry) -> dict[str, Any]:
    """Flatten an entry into its column values."""
    return {
        "id": entry.entry_id,
        "subject_id": entry.subject_id,
        "instructor_id": entry.instructor_id,
        "room_id": entry.room_id,
        "weekday": entry.slot.weekday,
        "start_time": format_clock_time(entry.slot.start_time),
        "end_time": format_clock_time(entry.slot.end_time),
        "academic_year": entry.term.academic_year,
        "academic_period": entry.term.academic_period,
        "status": entry.status.value,
        "notes": entry.notes,
        "created_at": format_timestamp(entry.created_at),
        "updated_at": format_timestamp(entry.updated_at),
    }


def _row_to_entry(row: sqlite3.Row) -> ScheduleEntry:
    return ScheduleEntry(
        entry_id=str(row["id"]),
        subject_id=str(row["subject_id"]),
        instructor_id=str(row["instructor_id"]),
        room_id=None if row["room_id"] is None else str(row["room_id"]),
        slot=TimeSlot(
            weekday=int(row["weekday"]),
            start_time=parse_clock_time(str(row["start_time"])),
            end_time=parse_clock_time(str(row["end_time"])),
        ),
        term=Term(
            academic_year=int(row["academic_year"]),
            academic_period=int(row["academic_period"]),
        ),
        status=ScheduleStatus(str(row["status"])),
        notes=None if row["notes"] is None else str(row["notes"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        updated_at=datetime.fromisoformat(str(row["updated_at"])),
    )


_FROM_WITH_CATALOG = """
    Schedules
    LEFT JOIN Subjects AS subject ON subject.id = Schedules.subject_id
    LEFT JOIN Instructors AS instructor ON instructor.id = Schedules.instructor_id
    LEFT JOIN Rooms AS room ON room.id = Schedules.room_id
"""

# sqlite LIKE is case-insensitive for ASCII.
_SEARCH_CLAUSE = """(
    subject.name LIKE ? ESCAPE '\\'
    OR subject.code LIKE ? ESCAPE '\\'
    OR instructor.name LIKE ? ESCAPE '\\'
    OR room.name LIKE ? ESCAPE '\\'
)"""


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _from_clause(filters: ScheduleFilters) -> str:
    """Catalog tables are joined only when a search term needs them."""
    return _FROM_WITH_CATALOG if filters.search is not None else "Schedules"


def _build_where(filters: ScheduleFilters) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    equality_filters = (
        ("subject_id", filters.subject_id),
        ("instructor_id", filters.instructor_id),
        ("room_id", filters.room_id),
        ("weekday", filters.weekday),
        ("academic_year", filters.academic_year),
        ("academic_period", filters.academic_period),
        ("status", filters.status.value if filters.status is not None else None),
    )
    for column, value in equality_filters:
        if value is not None:
            clauses.append(f"Schedules.{column} = ?")
            params.append(value)
    if filters.has_room is True:
        clauses.append("Schedules.room_id IS NOT NULL")
    elif filters.has_room is False:
        clauses.append("Schedules.room_id IS NULL")

    # HH:MM is fixed width, so text comparison is chronological.
    if filters.starts_at_or_after is not None:
        clauses.append("Schedules.start_time >= ?")
        params.append(format_clock_time(filters.starts_at_or_after))
    if filters.ends_at_or_before is not None:
        clauses.append("Schedules.end_time <= ?")
        params.append(format_clock_time(filters.ends_at_or_before))

    if filters.search is not None:
        clauses.append(_SEARCH_CLAUSE)
        pattern = _like_pattern(filters.search)
        params.extend([pattern] * 4)

    if not clauses:
        return "", params
    return "WHERE " + " AND ".join(clauses), params


class ScheduleRepository:
    """Encapsulates SQLite access so services never see SQL."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """One connection per call; commits on success, rolls back on error."""
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = self._connect()
            with connection:
                yield connection
        except sqlite3.Error as exc:
            raise RepositoryError(f"Schedule store operation failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    def initialize_database(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Schedules (
                    id TEXT PRIMARY KEY,
                    subject_id TEXT NOT NULL,
                    instructor_id TEXT NOT NULL,
                    room_id TEXT,
                    weekday INTEGER NOT NULL CHECK (weekday BETWEEN 1 AND 7),
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    academic_year INTEGER NOT NULL,
                    academic_period INTEGER NOT NULL,
                    status TEXT NOT NULL DEFAULT 'ACTIVE'
                        CHECK (status IN ('ACTIVE', 'CANCELLED')),
                    notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    CHECK (start_time < end_time)
                );
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_schedules_term_status
                ON Schedules(academic_year, academic_period, status);
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_schedules_instructor
                ON Schedules(instructor_id);
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_schedules_room
                ON Schedules(room_id);
                """
            )
        logger.info("Schedule store initialized at %s", self._db_path)

    def insert_schedule(self, entry: ScheduleEntry) -> None:
        columns = entry_to_columns(entry)
        placeholders = ", ".join(f":{name}" for name in columns)
        with self._session() as conn:
            conn.execute(
                f"INSERT INTO Schedules ({', '.join(columns)}) VALUES ({placeholders});",
                columns,
            )

    def insert_many(self, entries: Sequence[ScheduleEntry]) -> int:
        """Insert all entries in a single transaction; nothing is kept on failure."""
        if not entries:
            return 0
        rows = [entry_to_columns(entry) for entry in entries]
        column_names = list(rows[0])
        placeholders = ", ".join(f":{name}" for name in column_names)
        with self._session() as conn:
            cursor = conn.executemany(
                f"INSERT INTO Schedules ({', '.join(column_names)}) VALUES ({placeholders});",
                rows,
            )
            return int(cursor.rowcount)

    def get_schedule(self, entry_id: str) -> Optional[ScheduleEntry]:
        with self._session() as conn:
            row = conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM Schedules WHERE id = ?;",
                (entry_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_entry(row)

    def update_columns(self, entry_id: str, values: Mapping[str, Any]) -> bool:
        """Write only the given columns; returns False when the id is unknown."""
        unknown = set(values) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns are not updatable: {sorted(unknown)}")
        if not values:
            return self.get_schedule(entry_id) is not None
        assignments = ", ".join(f"{column} = :{column}" for column in values)
        params = dict(values)
        params["entry_id"] = entry_id
        with self._session() as conn:
            cursor = conn.execute(
                f"UPDATE Schedules SET {assignments} WHERE id = :entry_id;",
                params,
            )
            return cursor.rowcount > 0

    def delete_schedule(self, entry_id: str) -> bool:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM Schedules WHERE id = ?;", (entry_id,))
            return cursor.rowcount > 0

    def list_schedules(
        self,
        filters: ScheduleFilters,
        page: PageRequest,
        ordering: ScheduleOrdering = ScheduleOrdering.CREATED_DESC,
    ) -> tuple[list[ScheduleEntry], int]:
        """Return one page of matching entries and the unpaginated match count."""
        where_sql, params = _build_where(filters)
        from_sql = _from_clause(filters)
        with self._session() as conn:
            total = int(
                conn.execute(
                    f"SELECT COUNT(*) AS count FROM {from_sql} {where_sql};",
                    params,
                ).fetchone()["count"]
            )
            rows = conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM {from_sql}
                {where_sql}
                ORDER BY {_ORDER_BY[ordering]}
                LIMIT ? OFFSET ?;
                """,
                [*params, page.take, page.skip],
            ).fetchall()
        return [_row_to_entry(row) for row in rows], total

    def list_all(
        self,
        filters: ScheduleFilters,
        ordering: ScheduleOrdering = ScheduleOrdering.WEEKDAY_START,
    ) -> list[ScheduleEntry]:
        """Return every matching entry without pagination."""
        where_sql, params = _build_where(filters)
        from_sql = _from_clause(filters)
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM {from_sql}
                {where_sql}
                ORDER BY {_ORDER_BY[ordering]};
                """,
                params,
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def count_schedules(self) -> int:
        with self._session() as conn:
            return int(conn.execute("SELECT COUNT(*) AS count FROM Schedules;").fetchone()["count"])

    def seed_demo_schedules_if_empty(self, term: Term) -> int:
        """Seed a small week of classes, including one room clash, on an empty store."""
        if self.count_schedules() > 0:
            logger.info("Schedules already present; skipping demo seed")
            return 0

        # (subject, instructor, room, weekday, start, end)
        demo_rows = [
            ("SUBJ-ALG", "INST-ADA", "ROOM-A", 1, "08:00", "10:00"),
            ("SUBJ-CAL", "INST-EMMY", "ROOM-B", 1, "10:00", "12:00"),
            ("SUBJ-DBS", "INST-EDGAR", "ROOM-C", 2, "14:00", "16:00"),
            ("SUBJ-NET", "INST-VINT", "ROOM-C", 2, "15:00", "17:00"),
            ("SUBJ-ALG", "INST-ADA", "ROOM-A", 3, "08:00", "10:00"),
            ("SUBJ-OSY", "INST-LINUS", None, 4, "19:00", "21:00"),
            ("SUBJ-CAL", "INST-EMMY", "ROOM-B", 5, "10:00", "12:00"),
        ]
        now = utc_now()
        entries = [
            ScheduleEntry(
                entry_id=new_entry_id(),
                subject_id=subject_id,
                instructor_id=instructor_id,
                room_id=room_id,
                slot=TimeSlot.from_strings(weekday, start, end),
                term=term,
                status=ScheduleStatus.ACTIVE,
                notes=None,
                created_at=now,
                updated_at=now,
            )
            for subject_id, instructor_id, room_id, weekday, start, end in demo_rows
        ]
        created = self.insert_many(entries)
        logger.info("Demo schedule seed completed with %s entries", created)
        return created
