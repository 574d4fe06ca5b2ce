"""Weekly working hours per host"""

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.orm import Session

from ...models import BookingSlot
from .exceptions import ValidationError
from .time_utils import Weekday, parse_hhmm

logger = logging.getLogger(__name__)

DEFAULT_START_TIME = "09:00"
DEFAULT_END_TIME = "17:00"
DEFAULT_ACTIVE_DAYS = frozenset(
    {Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY}
)


@dataclass(frozen=True)
class WorkingHoursWindow:
    host_id: int
    day_of_week: Weekday
    start_time: str  # HH:MM, host local time
    end_time: str
    is_active: bool

    def to_dict(self) -> dict:
        return {
            "dayOfWeek": int(self.day_of_week),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "isActive": self.is_active,
        }


def default_week(host_id: int) -> list[WorkingHoursWindow]:
    """Mon-Fri 09:00-17:00 active, weekend inactive"""
    return [
        WorkingHoursWindow(
            host_id=host_id,
            day_of_week=day,
            start_time=DEFAULT_START_TIME,
            end_time=DEFAULT_END_TIME,
            is_active=day in DEFAULT_ACTIVE_DAYS,
        )
        for day in Weekday
    ]


def validate_week(windows: Sequence[WorkingHoursWindow]) -> None:
    """Exactly one window per day 0-6; active days need start < end"""
    days = [int(w.day_of_week) for w in windows]
    if len(windows) != 7 or sorted(days) != list(range(7)):
        raise ValidationError(
            "Availability must contain exactly one entry for each day 0-6", field="slots"
        )

    for index, window in enumerate(windows):
        start = parse_hhmm(window.start_time, field=f"slots[{index}].startTime")
        end = parse_hhmm(window.end_time, field=f"slots[{index}].endTime")
        if window.is_active and start >= end:
            raise ValidationError(
                f"{Weekday(window.day_of_week).name.title()}: start time must be before end time",
                field=f"slots[{index}].endTime",
            )


class WorkingHoursStore:
    """Reads and replaces a host's week; replacing the whole week is the only mutation"""

    def __init__(self, db: Session):
        self.db = db

    def get_week(self, host_id: int) -> list[WorkingHoursWindow]:
        rows = (
            self.db.query(BookingSlot)
            .filter(BookingSlot.user_id == host_id)
            .order_by(BookingSlot.day_of_week.asc())
            .all()
        )
        if not rows:
            return default_week(host_id)

        by_day = {row.day_of_week: row for row in rows}
        week = []
        for day in Weekday:
            row = by_day.get(int(day))
            if row is None:
                week.append(
                    WorkingHoursWindow(host_id, day, DEFAULT_START_TIME, DEFAULT_END_TIME, False)
                )
            else:
                week.append(
                    WorkingHoursWindow(
                        host_id, day, row.start_time, row.end_time, bool(row.is_active)
                    )
                )
        return week

    def get_window(self, host_id: int, day: Weekday) -> WorkingHoursWindow:
        return self.get_week(host_id)[int(day)]

    def set_week(self, host_id: int, windows: Sequence[WorkingHoursWindow]) -> list[WorkingHoursWindow]:
        validate_week(windows)

        try:
            self.db.query(BookingSlot).filter(BookingSlot.user_id == host_id).delete(
                synchronize_session=False
            )
            for window in sorted(windows, key=lambda w: int(w.day_of_week)):
                self.db.add(
                    BookingSlot(
                        user_id=host_id,
                        day_of_week=int(window.day_of_week),
                        start_time=window.start_time.strip(),
                        end_time=window.end_time.strip(),
                        is_active=window.is_active,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"✅ Working hours replaced for host {host_id}")
        return self.get_week(host_id)
