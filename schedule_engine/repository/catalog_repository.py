"""Read-mostly lookup of subject, instructor and room display data."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

from schedule_engine.domain.models import CatalogRecord
from schedule_engine.repository.schedule_repository import RepositoryError
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class CatalogLookup(Protocol):
    """Resolves catalog ids to display data; unknown ids resolve to None."""

    def get_subject(self, subject_id: str) -> Optional[CatalogRecord]:
        ...

    def get_instructor(self, instructor_id: str) -> Optional[CatalogRecord]:
        ...

    def get_room(self, room_id: str) -> Optional[CatalogRecord]:
        ...


class CatalogRepository:
    """SQLite mirror of the external catalog, used only to enrich responses."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = sqlite3.connect(self._db_path)
            connection.row_factory = sqlite3.Row
            with connection:
                yield connection
        except sqlite3.Error as exc:
            raise RepositoryError(f"Catalog operation failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    def initialize_database(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Subjects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    code TEXT
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Instructors (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS Rooms (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    capacity INTEGER CHECK (capacity IS NULL OR capacity > 0),
                    room_type TEXT,
                    location TEXT
                );
                """
            )
        logger.info("Catalog tables initialized at %s", self._db_path)

    def upsert_subject(self, subject_id: str, name: str, code: Optional[str] = None) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO Subjects (id, name, code) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, code = excluded.code;
                """,
                (subject_id, name, code),
            )

    def upsert_instructor(
        self,
        instructor_id: str,
        name: str,
        email: Optional[str] = None,
    ) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO Instructors (id, name, email) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name, email = excluded.email;
                """,
                (instructor_id, name, email),
            )

    def upsert_room(
        self,
        room_id: str,
        name: str,
        capacity: Optional[int] = None,
        room_type: Optional[str] = None,
        location: Optional[str] = None,
    ) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO Rooms (id, name, capacity, room_type, location)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    capacity = excluded.capacity,
                    room_type = excluded.room_type,
                    location = excluded.location;
                """,
                (room_id, name, capacity, room_type, location),
            )

    def get_subject(self, subject_id: str) -> Optional[CatalogRecord]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT id, name, code FROM Subjects WHERE id = ?;",
                (subject_id,),
            ).fetchone()
        if row is None:
            return None
        return CatalogRecord(record_id=str(row["id"]), name=str(row["name"]), code=row["code"])

    def get_instructor(self, instructor_id: str) -> Optional[CatalogRecord]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT id, name FROM Instructors WHERE id = ?;",
                (instructor_id,),
            ).fetchone()
        if row is None:
            return None
        return CatalogRecord(record_id=str(row["id"]), name=str(row["name"]))

    def get_room(self, room_id: str) -> Optional[CatalogRecord]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT id, name, capacity FROM Rooms WHERE id = ?;",
                (room_id,),
            ).fetchone()
        if row is None:
            return None
        capacity = None if row["capacity"] is None else int(row["capacity"])
        return CatalogRecord(record_id=str(row["id"]), name=str(row["name"]), capacity=capacity)

    def seed_demo_catalog_if_empty(self) -> None:
        """Mirror a handful of catalog records for local demos."""
        with self._session() as conn:
            room_count = int(conn.execute("SELECT COUNT(*) AS count FROM Rooms;").fetchone()["count"])
            if room_count > 0:
                logger.info("Catalog data already present; skipping seed")
                return
            conn.executemany(
                "INSERT INTO Subjects (id, name, code) VALUES (?, ?, ?);",
                [
                    ("SUBJ-ALG", "Algorithms", "CS201"),
                    ("SUBJ-CAL", "Calculus I", "MA101"),
                    ("SUBJ-DBS", "Database Systems", "CS305"),
                    ("SUBJ-NET", "Computer Networks", "CS310"),
                    ("SUBJ-OSY", "Operating Systems", "CS320"),
                ],
            )
            conn.executemany(
                "INSERT INTO Instructors (id, name, email) VALUES (?, ?, ?);",
                [
                    ("INST-ADA", "Ada Lovelace", "ada@example.edu"),
                    ("INST-EMMY", "Emmy Noether", "emmy@example.edu"),
                    ("INST-EDGAR", "Edgar Codd", "edgar@example.edu"),
                    ("INST-VINT", "Vint Cerf", "vint@example.edu"),
                    ("INST-LINUS", "Linus Torvalds", "linus@example.edu"),
                ],
            )
            conn.executemany(
                """
                INSERT INTO Rooms (id, name, capacity, room_type, location)
                VALUES (?, ?, ?, ?, ?);
                """,
                [
                    ("ROOM-A", "Room A", 30, "Classroom", "Block 1"),
                    ("ROOM-B", "Room B", 50, "Auditorium", "Block 1"),
                    ("ROOM-C", "Room C", 20, "Lab", "Block 2"),
                    ("ROOM-D", "Room D", 40, "Classroom", "Block 2"),
                ],
            )
        logger.info("Demo catalog seed completed")


def lookup_display_name(
    catalog: Optional[CatalogLookup],
    kind: str,
    record_id: Optional[str],
) -> Optional[str]:
    """Best-effort name for a catalog id; None when unknown or unavailable."""
    if catalog is None or record_id is None:
        return None
    lookup = {
        "subject": catalog.get_subject,
        "instructor": catalog.get_instructor,
        "room": catalog.get_room,
    }[kind]
    try:
        record = lookup(record_id)
    except RepositoryError as exc:
        logger.warning("Catalog lookup failed | %s_id=%s | error=%s", kind, record_id, exc)
        return None
    return record.name if record is not None else None
