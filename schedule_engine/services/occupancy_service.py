"""Occupancy statistics over active schedule entries."""

from __future__ import annotations

from typing import Optional

import pandas as pd

from schedule_engine.domain.constraints import OccupancyConfig, validate_occupancy_config
from schedule_engine.domain.models import (
    OccupancyStats,
    RoomUsage,
    ScheduleEntry,
    ScheduleFilters,
    ScheduleStatus,
    Term,
    Weekday,
)
from schedule_engine.repository.catalog_repository import CatalogLookup, lookup_display_name
from schedule_engine.repository.schedule_repository import ScheduleRepository
from schedule_engine.utils.config import Settings, get_settings
from schedule_engine.utils.logger import get_logger


logger = get_logger(__name__)


class OccupancyValidationError(Exception):
    """Raised when the occupancy configuration is invalid."""


def hour_bucket(hour: int) -> str:
    return f"{hour:02d}:00"


def build_entry_frame(entries: list[ScheduleEntry]) -> pd.DataFrame:
    """One row per entry with the columns the tallies need."""
    return pd.DataFrame(
        [
            {
                "entry_id": entry.entry_id,
                "subject_id": entry.subject_id,
                "instructor_id": entry.instructor_id,
                "room_id": entry.room_id,
                "weekday": entry.slot.weekday,
                "start_hour": entry.slot.start_time.hour,
                "duration_minutes": entry.slot.duration_minutes,
            }
            for entry in entries
        ],
        columns=[
            "entry_id",
            "subject_id",
            "instructor_id",
            "room_id",
            "weekday",
            "start_hour",
            "duration_minutes",
        ],
    )


class OccupancyStatisticsService:
    """Weekday/hour distributions and room utilization, computed on demand."""

    def __init__(
        self,
        repository: Optional[ScheduleRepository] = None,
        catalog: Optional[CatalogLookup] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or ScheduleRepository(self._settings)
        self._catalog = catalog
        self._config = OccupancyConfig(
            slot_capacity_per_room_per_week=self._settings.slot_capacity_per_room_per_week,
            hour_range_start=self._settings.stats_hour_range_start,
            hour_range_end=self._settings.stats_hour_range_end,
            top_rooms_limit=self._settings.stats_top_rooms_limit,
        )
        try:
            validate_occupancy_config(self._config)
        except ValueError as exc:
            raise OccupancyValidationError(str(exc)) from exc

    @property
    def config(self) -> OccupancyConfig:
        return self._config

    def _tally_weekdays(self, frame: pd.DataFrame) -> dict[str, int]:
        by_weekday = {day.display_name: 0 for day in Weekday}
        for weekday, count in frame["weekday"].value_counts().items():
            by_weekday[Weekday(int(weekday)).display_name] = int(count)
        return by_weekday

    def _tally_hours(self, frame: pd.DataFrame) -> dict[str, int]:
        """Pre-seeded range buckets plus a bucket for every out-of-range start hour."""
        counts = {int(hour): int(count) for hour, count in frame["start_hour"].value_counts().items()}
        seeded = range(self._config.hour_range_start, self._config.hour_range_end + 1)
        hours = sorted(set(seeded).union(counts))
        return {hour_bucket(hour): counts.get(hour, 0) for hour in hours}

    def _rank_rooms(self, frame: pd.DataFrame) -> pd.DataFrame:
        room_frame = frame.dropna(subset=["room_id"])
        if room_frame.empty:
            return pd.DataFrame(columns=["room_id", "usage_count"])
        usage = room_frame.groupby("room_id").size().reset_index(name="usage_count")
        return usage.sort_values(
            by=["usage_count", "room_id"],
            ascending=[False, True],
            kind="mergesort",
        ).reset_index(drop=True)

    def compute_stats(self, term: Optional[Term] = None) -> OccupancyStats:
        filters = (
            ScheduleFilters.active_in_term(term)
            if term is not None
            else ScheduleFilters(status=ScheduleStatus.ACTIVE)
        )
        entries = self._repository.list_all(filters)
        frame = build_entry_frame(entries)
        capacity = self._config.slot_capacity_per_room_per_week

        room_usage = self._rank_rooms(frame)
        rooms_in_use = int(len(room_usage))
        booked_room_slots = int(room_usage["usage_count"].sum()) if rooms_in_use else 0
        overall_utilization = (
            booked_room_slots / (rooms_in_use * capacity) if rooms_in_use else 0.0
        )

        top_rooms = [
            RoomUsage(
                room_id=str(row.room_id),
                usage_count=int(row.usage_count),
                utilization=int(row.usage_count) / capacity,
                room_name=lookup_display_name(self._catalog, "room", str(row.room_id)),
            )
            for row in room_usage.head(self._config.top_rooms_limit).itertuples(index=False)
        ]

        stats = OccupancyStats(
            term=term,
            total_entries=int(len(frame)),
            by_weekday=self._tally_weekdays(frame),
            by_hour=self._tally_hours(frame),
            top_rooms=top_rooms,
            rooms_in_use=rooms_in_use,
            overall_utilization=float(overall_utilization),
            instructors_active=int(frame["instructor_id"].nunique()),
            subjects_scheduled=int(frame["subject_id"].nunique()),
            weekly_hours=round(float(frame["duration_minutes"].sum()) / 60.0, 2),
            slot_capacity_per_room_per_week=capacity,
        )
        logger.info(
            "Occupancy stats computed | term=%s | entries=%s | rooms_in_use=%s | utilization=%.4f",
            term.label if term is not None else "ALL",
            stats.total_entries,
            stats.rooms_in_use,
            stats.overall_utilization,
        )
        return stats
