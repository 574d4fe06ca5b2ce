"""
Free slot computation

Working hours for the day minus the union of occupying bookings gives the free
sub-intervals; each one is cut into non-overlapping slots of the requested
duration. Every slot starts on the calendar grid (SLOT_GRID_MINUTES past local
midnight) unless aligning would lose an opening that fits flush against the
end of the previous slot or the start of the sub-interval.

All arithmetic runs on naive datetimes in the host's local time; results are
returned as aware datetimes in the host's zone.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ...config import DEFAULT_SLOT_DURATION, SLOT_GRID_MINUTES
from .exceptions import ValidationError
from .repository import BookingRepository
from .time_utils import (
    Weekday,
    host_zone,
    local_day_bounds,
    parse_hhmm,
    utc_to_local_naive,
)
from .working_hours import WorkingHoursStore

logger = logging.getLogger(__name__)

Interval = tuple[datetime, datetime]


@dataclass(frozen=True)
class AvailabilitySlot:
    start: datetime
    end: datetime

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    @classmethod
    def from_dict(cls, data: dict) -> "AvailabilitySlot":
        return cls(datetime.fromisoformat(data["start"]), datetime.fromisoformat(data["end"]))


def merge_intervals(intervals: Iterable[Interval]) -> list[Interval]:
    """Sort and merge overlapping or touching intervals"""
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(window: Interval, busy: Iterable[Interval]) -> list[Interval]:
    """Disjoint free parts of window not covered by any busy interval, ascending"""
    window_start, window_end = window
    clipped = [
        (max(start, window_start), min(end, window_end))
        for start, end in busy
        if start < window_end and end > window_start
    ]

    free: list[Interval] = []
    cursor = window_start
    for start, end in merge_intervals(clipped):
        if start > cursor:
            free.append((cursor, start))
        cursor = max(cursor, end)
    if cursor < window_end:
        free.append((cursor, window_end))
    return free


def ceil_to_grid(moment: datetime, grid_minutes: int) -> datetime:
    midnight = datetime.combine(moment.date(), time.min)
    grid = timedelta(minutes=grid_minutes)
    steps, remainder = divmod(moment - midnight, grid)
    if remainder:
        steps += 1
    return midnight + steps * grid


def first_slot_start(free: Interval, duration: timedelta, grid_minutes: int) -> Optional[datetime]:
    free_start, free_end = free
    aligned = ceil_to_grid(free_start, grid_minutes)
    if aligned + duration <= free_end:
        return aligned
    if free_start + duration <= free_end:
        return free_start
    return None


def split_into_slots(free: Iterable[Interval], duration: timedelta, grid_minutes: int) -> list[Interval]:
    slots: list[Interval] = []
    for free_start, free_end in free:
        cursor = free_start
        while True:
            start = first_slot_start((cursor, free_end), duration, grid_minutes)
            if start is None:
                break
            slots.append((start, start + duration))
            cursor = start + duration
    return slots


def drop_past(slots: Iterable[AvailabilitySlot], now: datetime) -> list[AvailabilitySlot]:
    return [slot for slot in slots if slot.start > now]


class SlotGenerator:
    def __init__(self, db: Session, grid_minutes: int = SLOT_GRID_MINUTES):
        self.db = db
        self.grid_minutes = grid_minutes
        self.store = WorkingHoursStore(db)
        self.repo = BookingRepository()

    def generate(
        self,
        host_id: int,
        day: date,
        duration: int = DEFAULT_SLOT_DURATION,
        tz_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[AvailabilitySlot]:
        """Free slots of exactly `duration` minutes on the host's local `day`"""
        if duration is None or duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes", field="duration")

        zone: ZoneInfo = host_zone(tz_name)
        window = self.store.get_window(host_id, Weekday.of(day))
        if not window.is_active:
            return []

        work = (
            datetime.combine(day, parse_hhmm(window.start_time, field="startTime")),
            datetime.combine(day, parse_hhmm(window.end_time, field="endTime")),
        )

        day_start, day_end = local_day_bounds(day, zone)
        bookings = self.repo.find_overlapping(self.db, host_id, day_start, day_end)
        busy = [
            (utc_to_local_naive(b.start_time, zone), utc_to_local_naive(b.end_time, zone))
            for b in bookings
        ]

        free = subtract_intervals(work, busy)
        intervals = split_into_slots(free, timedelta(minutes=duration), self.grid_minutes)
        slots = [
            AvailabilitySlot(start.replace(tzinfo=zone), end.replace(tzinfo=zone))
            for start, end in intervals
        ]
        logger.debug(
            f"Host {host_id} {day.isoformat()}: {len(bookings)} bookings, {len(slots)} free slots"
        )

        if now is not None:
            return drop_past(slots, now)
        return slots
