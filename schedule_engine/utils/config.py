"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable settings snapshot shared by every layer."""

    app_name: str
    app_version: str
    database_path: Path
    log_level: str

    weekday_min: int
    weekday_max: int
    time_of_day_regex: str

    slot_capacity_per_room_per_week: int
    stats_hour_range_start: int
    stats_hour_range_end: int
    stats_top_rooms_limit: int
    room_operating_hours_per_week: int
    room_opening_time: str
    room_closing_time: str

    pagination_default_take: int
    pagination_max_take: int
    bulk_create_max_entries: int

    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings from the environment once per process."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Class Schedule Engine"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(os.getenv("SCHEDULE_DB_PATH", "data/schedule_engine.db")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        weekday_min=1,
        weekday_max=7,
        time_of_day_regex=r"^([01][0-9]|2[0-3]):[0-5][0-9]$",
        slot_capacity_per_room_per_week=_env_int("SLOT_CAPACITY_PER_ROOM_PER_WEEK", 40),
        stats_hour_range_start=_env_int("STATS_HOUR_RANGE_START", 8),
        stats_hour_range_end=_env_int("STATS_HOUR_RANGE_END", 22),
        stats_top_rooms_limit=_env_int("STATS_TOP_ROOMS_LIMIT", 10),
        room_operating_hours_per_week=_env_int("ROOM_OPERATING_HOURS_PER_WEEK", 60),
        room_opening_time=os.getenv("ROOM_OPENING_TIME", "07:00"),
        room_closing_time=os.getenv("ROOM_CLOSING_TIME", "22:00"),
        pagination_default_take=_env_int("PAGINATION_DEFAULT_TAKE", 10),
        pagination_max_take=_env_int("PAGINATION_MAX_TAKE", 100),
        bulk_create_max_entries=_env_int("BULK_CREATE_MAX_ENTRIES", 500),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
    )
