"""Overlap detection against a host's occupying bookings"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking
from .exceptions import ConflictError, ValidationError
from .repository import BookingRepository
from .time_utils import to_utc_naive

logger = logging.getLogger(__name__)


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open intervals: back-to-back intervals do not overlap"""
    return start_a < end_b and start_b < end_a


@dataclass
class ConflictResult:
    conflicts: list[Booking] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.conflicts


class ConflictChecker:
    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def check(
        self,
        host_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> ConflictResult:
        """Return the occupying bookings that overlap [start, end)"""
        start = to_utc_naive(start)
        end = to_utc_naive(end)
        if start >= end:
            raise ValidationError("End time must be after start time", field="endTime")

        candidates = self.repo.find_overlapping(
            self.db, host_id, start, end, exclude_booking_id=exclude_booking_id
        )
        conflicts = [b for b in candidates if intervals_overlap(start, end, b.start_time, b.end_time)]
        return ConflictResult(conflicts=conflicts)

    def ensure_free(
        self,
        host_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        result = self.check(host_id, start, end, exclude_booking_id)
        if not result.ok:
            logger.warning(
                f"⚠️ Booking conflict for host {host_id}: "
                f"{[b.id for b in result.conflicts]} overlap {start} - {end}"
            )
            raise ConflictError("Time slot not available", conflicts=result.conflicts)
