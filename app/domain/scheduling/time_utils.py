"""Time parsing and timezone conversion for the scheduling domain"""

import enum
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...config import DEFAULT_TIMEZONE
from .exceptions import ValidationError

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Weekday(enum.IntEnum):
    """Day of week with Sunday as day zero"""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        # date.weekday() is Monday=0
        return cls((day.weekday() + 1) % 7)


def parse_hhmm(value: str, field: str = "time") -> time:
    """Parse a 24h HH:MM string"""
    match = _HHMM.match((value or "").strip())
    if not match:
        raise ValidationError(f"Invalid {field} '{value}', expected HH:MM", field=field)
    return time(int(match.group(1)), int(match.group(2)))


def host_zone(tz_name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def to_utc_naive(value: datetime) -> datetime:
    """Normalize an instant for storage; naive input is taken as UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to a stored naive timestamp"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_to_local_naive(value: datetime, zone: ZoneInfo) -> datetime:
    return as_utc(value).astimezone(zone).replace(tzinfo=None)


def local_naive_to_utc(value: datetime, zone: ZoneInfo) -> datetime:
    return value.replace(tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)


def parse_day(value: str, zone: ZoneInfo) -> date:
    """Accept YYYY-MM-DD or a full ISO timestamp interpreted in the host zone"""
    raw = (value or "").strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Invalid date format", field="date") from None
    if parsed.tzinfo is None:
        return parsed.date()
    return parsed.astimezone(zone).date()


def local_day_bounds(day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) covering the host's local calendar day"""
    start = datetime.combine(day, time.min)
    return local_naive_to_utc(start, zone), local_naive_to_utc(start + timedelta(days=1), zone)


def local_dates_between(start_utc: datetime, end_utc: datetime, zone: ZoneInfo) -> list[str]:
    """Local dates (YYYY-MM-DD) touched by the half-open interval"""
    first = utc_to_local_naive(start_utc, zone).date()
    last = utc_to_local_naive(end_utc - timedelta(microseconds=1), zone).date()
    days = []
    current = first
    while current <= last:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


def parse_range_bound(value: Optional[str], field: str, end_of_day: bool = False) -> Optional[datetime]:
    """
    Range filter bound as naive UTC. A bare date covers the whole UTC day,
    so an end bound of 2024-05-01 includes bookings on that day.
    """
    if not value:
        return None
    raw = value.strip()
    try:
        day = date.fromisoformat(raw)
    except ValueError:
        day = None
    if day is not None:
        bound = datetime.combine(day, time.min)
        return bound + timedelta(days=1) if end_of_day else bound
    try:
        return to_utc_naive(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Invalid {field}", field=field) from None
