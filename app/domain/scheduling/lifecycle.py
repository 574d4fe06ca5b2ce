"""
Booking status state machine.

    PENDING     -> CONFIRMED | CANCELLED | RESCHEDULED
    CONFIRMED   -> CANCELLED | RESCHEDULED | COMPLETED | NO_SHOW
    RESCHEDULED -> CONFIRMED | CANCELLED | RESCHEDULED | COMPLETED | NO_SHOW

CANCELLED, COMPLETED and NO_SHOW are terminal. COMPLETED additionally
requires the booking's end time to have passed.

Usage:
    lifecycle = BookingLifecycle()
    lifecycle.transition(booking, BookingStatus.CONFIRMED)
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from ...models import Booking, BookingStatus
from .exceptions import InvalidStateError
from .time_utils import as_utc, to_utc_naive

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW})

INITIAL_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})

TRANSITIONS: dict[BookingStatus, frozenset] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.RESCHEDULED}
    ),
    BookingStatus.CONFIRMED: frozenset(
        {
            BookingStatus.CANCELLED,
            BookingStatus.RESCHEDULED,
            BookingStatus.COMPLETED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.RESCHEDULED: frozenset(
        {
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
            BookingStatus.RESCHEDULED,
            BookingStatus.COMPLETED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


def _status(value: Union[str, BookingStatus]) -> BookingStatus:
    return value if isinstance(value, BookingStatus) else BookingStatus(value)


class BookingLifecycle:
    """Validates and applies status transitions; never mutates on failure"""

    def allowed_from(self, current: Union[str, BookingStatus]) -> frozenset:
        return TRANSITIONS[_status(current)]

    def is_terminal(self, status: Union[str, BookingStatus]) -> bool:
        return _status(status) in TERMINAL_STATUSES

    def validate_initial(self, status: Union[str, BookingStatus]) -> BookingStatus:
        target = _status(status)
        if target not in INITIAL_STATUSES:
            raise InvalidStateError("NEW", target.value, "Bookings start as PENDING or CONFIRMED")
        return target

    def can_transition(
        self,
        booking: Booking,
        target: Union[str, BookingStatus],
        now: Optional[datetime] = None,
    ) -> bool:
        try:
            self.validate(booking, target, now)
        except InvalidStateError:
            return False
        return True

    def validate(
        self,
        booking: Booking,
        target: Union[str, BookingStatus],
        now: Optional[datetime] = None,
    ) -> BookingStatus:
        current = _status(booking.status)
        target = _status(target)

        if current in TERMINAL_STATUSES:
            raise InvalidStateError(
                current.value, target.value, f"Booking is already {current.value.lower()}"
            )
        if target not in TRANSITIONS[current]:
            raise InvalidStateError(current.value, target.value)

        if target == BookingStatus.COMPLETED:
            now = now or datetime.now(timezone.utc)
            if as_utc(booking.end_time) > now:
                raise InvalidStateError(
                    current.value, target.value, "A booking can only be completed after it has ended"
                )
        return target

    def transition(
        self,
        booking: Booking,
        target: Union[str, BookingStatus],
        now: Optional[datetime] = None,
    ) -> Booking:
        """Apply the transition to the (unsaved) booking; the caller commits"""
        previous = booking.status
        target = self.validate(booking, target, now)
        booking.status = target.value
        if target == BookingStatus.CANCELLED:
            booking.cancelled_at = to_utc_naive(now or datetime.now(timezone.utc))
        logger.info(f"Booking {booking.id}: {previous} -> {target.value}")
        return booking
