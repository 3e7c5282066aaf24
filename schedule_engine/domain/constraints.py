"""Domain-level rules for recurring weekly time slots and occupancy reporting."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from schedule_engine.domain.models import TimeSlot


ISO_WEEKDAY_MIN = 1
ISO_WEEKDAY_MAX = 7


class InvalidTimeSlotError(ValueError):
    """Raised when a weekday/start/end triple cannot form a valid slot."""


def validate_time_slot(weekday: int, start_time: time, end_time: time) -> None:
    if isinstance(weekday, bool) or not isinstance(weekday, int):
        raise InvalidTimeSlotError("weekday must be an integer")
    if not ISO_WEEKDAY_MIN <= weekday <= ISO_WEEKDAY_MAX:
        raise InvalidTimeSlotError(
            f"weekday must be between {ISO_WEEKDAY_MIN} and {ISO_WEEKDAY_MAX}, got {weekday}"
        )
    for label, value in (("start_time", start_time), ("end_time", end_time)):
        if not isinstance(value, time):
            raise InvalidTimeSlotError(f"{label} must be a clock time")
        if value.second or value.microsecond:
            raise InvalidTimeSlotError(f"{label} must have minute resolution")
        if value.tzinfo is not None:
            raise InvalidTimeSlotError(f"{label} must be a naive clock time")
    if start_time >= end_time:
        raise InvalidTimeSlotError("start_time must be earlier than end_time")


def overlaps(a: TimeSlot, b: TimeSlot) -> bool:
    """Half-open intersection test; slots on different weekdays never overlap."""
    if a.weekday != b.weekday:
        return False
    return a.start_time < b.end_time and b.start_time < a.end_time


@dataclass(frozen=True)
class OccupancyConfig:
    slot_capacity_per_room_per_week: int
    hour_range_start: int
    hour_range_end: int
    top_rooms_limit: int


def validate_occupancy_config(config: OccupancyConfig) -> None:
    if config.slot_capacity_per_room_per_week <= 0:
        raise ValueError("slot_capacity_per_room_per_week must be > 0")
    if not 0 <= config.hour_range_start <= 23:
        raise ValueError("hour_range_start must be between 0 and 23")
    if not 0 <= config.hour_range_end <= 23:
        raise ValueError("hour_range_end must be between 0 and 23")
    if config.hour_range_start > config.hour_range_end:
        raise ValueError("hour_range_start must not exceed hour_range_end")
    if config.top_rooms_limit <= 0:
        raise ValueError("top_rooms_limit must be > 0")
