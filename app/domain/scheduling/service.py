"""Scheduling services - Business logic for availability and bookings"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...cache import (
    availability_tag,
    bookings_tag,
    build_availability_key,
    build_slots_key,
    cache,
    slots_tag,
)
from ...config import AVAILABILITY_CACHE_TTL, DEFAULT_SLOT_DURATION, MAX_SLOT_DURATION, SLOT_CACHE_TTL
from ...models import MANAGER_ROLES, Booking, BookingStatus, User, UserRole
from ...services.google_calendar_service import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    get_connection,
)
from .conflicts import ConflictChecker
from .exceptions import NotFoundError, PermissionDeniedError, ValidationError
from .lifecycle import BookingLifecycle
from .locks import host_lock
from .repository import BookingRepository
from .schemas import (
    AvailabilityCheckRequest,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    RelatedRef,
    WorkingHoursWindowSchema,
)
from .slots import AvailabilitySlot, SlotGenerator, drop_past
from .time_utils import (
    Weekday,
    as_utc,
    host_zone,
    local_dates_between,
    parse_day,
    parse_range_bound,
    to_utc_naive,
)
from .working_hours import WorkingHoursStore, WorkingHoursWindow, validate_week

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled by user"
SYNC_PENDING = "pending"


def is_manager(user: User) -> bool:
    return user.role in MANAGER_ROLES


def require_manager(user: User, action: str) -> None:
    if not is_manager(user):
        logger.warning(f"⚠️ User {user.id} ({user.role}) not allowed to {action}")
        raise PermissionDeniedError(f"Only admins and service managers can {action}")


@dataclass
class SyncRequest:
    """Arguments for the background calendar push"""

    booking_id: int
    action: str
    google_event_id: Optional[str] = None


@dataclass
class BookingOutcome:
    booking: Booking
    warnings: list[str] = field(default_factory=list)
    sync: Optional[SyncRequest] = None


class AvailabilityService:
    """Working hours and free slot queries, cached per host"""

    def __init__(self, db: Session, cache_backend=None):
        self.db = db
        self.cache = cache_backend or cache
        self.repo = BookingRepository()
        self.store = WorkingHoursStore(db)

    def _get_host(self, host_id: int) -> User:
        host = self.repo.get_user(self.db, host_id)
        if not host:
            raise NotFoundError("Host not found", field="hostId")
        return host

    def get_week(self, host_id: int, user: User) -> list[dict]:
        """Seven windows ordered Sunday..Saturday"""
        if host_id != user.id and not is_manager(user):
            raise PermissionDeniedError("Not allowed to view this host's availability")
        self._get_host(host_id)

        return self.cache.get_or_set(
            build_availability_key(host_id),
            lambda: [w.to_dict() for w in self.store.get_week(host_id)],
            ttl=AVAILABILITY_CACHE_TTL,
            tags=[availability_tag(host_id)],
        )

    def save_week(self, host_id: int, slots: list[WorkingHoursWindowSchema], user: User) -> list[dict]:
        """Replace the whole week, then drop cached availability and slots for the host"""
        require_manager(user, "edit availability")
        self._get_host(host_id)

        windows = [
            WorkingHoursWindow(
                host_id=host_id,
                day_of_week=Weekday(s.dayOfWeek),
                start_time=s.startTime,
                end_time=s.endTime,
                is_active=s.isActive,
            )
            for s in slots
        ]
        validate_week(windows)

        self.repo.log_activity(
            self.db,
            user.id,
            "availability",
            host_id,
            "updated",
            details={"activeDays": [int(w.day_of_week) for w in windows if w.is_active]},
        )
        week = self.store.set_week(host_id, windows)
        self.cache.invalidate_tags([availability_tag(host_id), slots_tag(host_id)])
        return [w.to_dict() for w in week]

    def get_slots(
        self,
        host_id: int,
        date_value: str,
        duration: int = DEFAULT_SLOT_DURATION,
        now: Optional[datetime] = None,
    ) -> dict:
        if duration is None or duration < 1 or duration > MAX_SLOT_DURATION:
            raise ValidationError(
                f"Duration must be between 1 and {MAX_SLOT_DURATION} minutes", field="duration"
            )

        host = self._get_host(host_id)
        zone = host_zone(host.timezone)
        day = parse_day(date_value, zone)
        day_key = day.isoformat()

        def load() -> list[dict]:
            generator = SlotGenerator(self.db)
            return [s.to_dict() for s in generator.generate(host_id, day, duration, host.timezone)]

        cached = self.cache.get_or_set(
            build_slots_key(host_id, day_key, duration),
            load,
            ttl=SLOT_CACHE_TTL,
            tags=[slots_tag(host_id), slots_tag(host_id, day_key)],
        )
        # Cached lists are time-independent; past slots are dropped per request
        slots = drop_past(
            [AvailabilitySlot.from_dict(s) for s in cached], now or datetime.now(timezone.utc)
        )
        return {"slots": slots, "date": day_key, "duration": duration, "hostId": host_id}


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session, cache_backend=None):
        self.db = db
        self.cache = cache_backend or cache
        self.repo = BookingRepository()
        self.checker = ConflictChecker(db)
        self.lifecycle = BookingLifecycle()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check_availability(self, data: AvailabilityCheckRequest) -> dict:
        """Advisory check; create and update re-run it under the host lock"""
        if not self.repo.get_user(self.db, data.hostId):
            raise NotFoundError("Host not found", field="hostId")

        result = self.checker.check(data.hostId, data.startTime, data.endTime, data.excludeBookingId)
        return {
            "available": result.ok,
            "hostId": data.hostId,
            "startTime": as_utc(to_utc_naive(data.startTime)),
            "endTime": as_utc(to_utc_naive(data.endTime)),
            "conflicts": [
                {
                    "id": b.id,
                    "title": b.title,
                    "status": b.status,
                    "startTime": as_utc(b.start_time),
                    "endTime": as_utc(b.end_time),
                }
                for b in result.conflicts
            ],
        }

    def list_bookings(
        self,
        user: User,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        host_id: Optional[int] = None,
    ) -> list[Booking]:
        if user.role == UserRole.CLIENT.value:
            raise PermissionDeniedError("Clients cannot list bookings")
        if status and status not in BookingStatus.__members__:
            raise ValidationError(f"Unknown status '{status}'", field="status")

        start = parse_range_bound(start_date, "startDate")
        end = parse_range_bound(end_date, "endDate", end_of_day=True)
        if start and end and start >= end:
            raise ValidationError("endDate must be after startDate", field="endDate")

        if not is_manager(user):
            host_id = user.id

        return self.repo.list_bookings(
            self.db, host_id=host_id, client_id=client_id, status=status, start=start, end=end
        )

    def get_booking(self, booking_id: int, user: User) -> Booking:
        booking = self._load(booking_id)
        if not is_manager(user) and user.id not in (booking.host_id, booking.created_by):
            raise PermissionDeniedError("Not allowed to view this booking")
        return booking

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_booking(self, data: BookingCreate, user: User) -> BookingOutcome:
        """Conflict check and insert run atomically per host"""
        require_manager(user, "create bookings")
        logger.info(f"📥 Creating booking for host {data.hostId} by user {user.id}")

        host = self.repo.get_user(self.db, data.hostId)
        if not host:
            raise NotFoundError("Host not found", field="hostId")
        if not self.repo.get_client(self.db, data.clientId):
            raise NotFoundError("Client not found", field="clientId")
        if data.serviceId is not None and not self.repo.get_service(self.db, data.serviceId):
            raise NotFoundError("Service not found", field="serviceId")

        status = self.lifecycle.validate_initial(data.status)
        start = to_utc_naive(data.startTime)
        end = to_utc_naive(data.endTime)
        if start >= end:
            raise ValidationError("End time must be after start time", field="endTime")

        outcome = BookingOutcome(booking=None)
        with host_lock(host.id):
            try:
                self.repo.lock_host(self.db, host.id)
                self.checker.ensure_free(host.id, start, end)

                booking = self.repo.add_booking(
                    self.db,
                    host_id=host.id,
                    client_id=data.clientId,
                    service_id=data.serviceId,
                    created_by=user.id,
                    title=data.title.strip(),
                    description=data.description,
                    location=data.location,
                    meeting_url=data.meetingUrl,
                    notes=data.notes,
                    attendees=[a.model_dump() for a in data.attendees or []],
                    start_time=start,
                    end_time=end,
                    duration=int((end - start).total_seconds() // 60),
                    status=status.value,
                )
                self.repo.log_activity(
                    self.db,
                    user.id,
                    "booking",
                    booking.id,
                    "created",
                    client_id=booking.client_id,
                    details={"title": booking.title, "startTime": start.isoformat() + "Z"},
                )
                outcome.booking = booking
                outcome.sync = self._plan_sync(booking, ACTION_CREATE, None, outcome.warnings)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"✅ Booking {booking.id} created ({booking.status}) for host {host.id}")
        self._invalidate(host, [(start, end)])
        outcome.booking = self._load(booking.id)
        return outcome

    def update_booking(self, booking_id: int, data: BookingUpdate, user: User) -> BookingOutcome:
        """
        Partial update. A time change moves the booking to RESCHEDULED and is
        re-checked against every other occupying booking of the host; a status
        drives a lifecycle transition. Nothing is written if either is rejected.
        """
        require_manager(user, "update bookings")
        booking = self._load(booking_id)
        self._check_update(booking, data)
        if data.serviceId is not None and not self.repo.get_service(self.db, data.serviceId):
            raise NotFoundError("Service not found", field="serviceId")

        outcome = BookingOutcome(booking=booking)
        with host_lock(booking.host_id):
            try:
                self.repo.lock_host(self.db, booking.host_id)
                # A concurrent cancel or reschedule may have committed since the load
                self.repo.reload_for_update(self.db, booking)
                old_interval, new_start, new_end, time_changed = self._check_update(booking, data)
                previous_event_id = booking.google_event_id
                if time_changed:
                    self.checker.ensure_free(
                        booking.host_id, new_start, new_end, exclude_booking_id=booking.id
                    )

                self._apply_details(booking, data)
                action = "updated"
                if time_changed:
                    booking.start_time = new_start
                    booking.end_time = new_end
                    booking.duration = int((new_end - new_start).total_seconds() // 60)
                    self.lifecycle.transition(booking, BookingStatus.RESCHEDULED)
                    action = "rescheduled"
                elif data.status:
                    if data.status == BookingStatus.CANCELLED.value:
                        booking.cancel_reason = booking.cancel_reason or DEFAULT_CANCEL_REASON
                    self.lifecycle.transition(booking, data.status)
                    action = data.status.lower()

                self.repo.log_activity(
                    self.db,
                    user.id,
                    "booking",
                    booking.id,
                    action,
                    client_id=booking.client_id,
                    details={"fields": sorted(data.model_dump(exclude_unset=True).keys())},
                )
                sync_action = (
                    ACTION_DELETE if booking.status == BookingStatus.CANCELLED.value else ACTION_UPDATE
                )
                outcome.sync = self._plan_sync(booking, sync_action, previous_event_id, outcome.warnings)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"✅ Booking {booking_id} {action}")
        host = self.repo.get_user(self.db, booking.host_id)
        self._invalidate(host, [old_interval, (new_start, new_end)])
        outcome.booking = self._load(booking_id)
        return outcome

    def cancel_booking(self, booking_id: int, reason: Optional[str], user: User) -> BookingOutcome:
        """Status change only; cancelled bookings are kept"""
        require_manager(user, "cancel bookings")
        booking = self._load(booking_id)
        self.lifecycle.validate(booking, BookingStatus.CANCELLED)

        outcome = BookingOutcome(booking=booking)
        with host_lock(booking.host_id):
            try:
                self.repo.lock_host(self.db, booking.host_id)
                self.repo.reload_for_update(self.db, booking)
                self.lifecycle.validate(booking, BookingStatus.CANCELLED)
                previous_event_id = booking.google_event_id

                booking.cancel_reason = (reason or "").strip() or DEFAULT_CANCEL_REASON
                self.lifecycle.transition(booking, BookingStatus.CANCELLED)
                self.repo.log_activity(
                    self.db,
                    user.id,
                    "booking",
                    booking.id,
                    "cancelled",
                    client_id=booking.client_id,
                    details={"reason": booking.cancel_reason},
                )
                outcome.sync = self._plan_sync(booking, ACTION_DELETE, previous_event_id, outcome.warnings)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"✅ Booking {booking_id} cancelled: {booking.cancel_reason}")
        host = self.repo.get_user(self.db, booking.host_id)
        self._invalidate(host, [(booking.start_time, booking.end_time)])
        outcome.booking = self._load(booking_id)
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load(self, booking_id: int) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def _check_update(self, booking: Booking, data: BookingUpdate) -> tuple:
        """Resolve the requested interval and reject illegal changes without mutating"""
        old_interval = (booking.start_time, booking.end_time)
        new_start = to_utc_naive(data.startTime) if data.startTime else booking.start_time
        new_end = to_utc_naive(data.endTime) if data.endTime else booking.end_time
        time_changed = (new_start, new_end) != old_interval

        if time_changed and data.status:
            raise ValidationError(
                "Change the time and the status in separate requests", field="status"
            )
        if time_changed:
            if new_start >= new_end:
                raise ValidationError("End time must be after start time", field="endTime")
            self.lifecycle.validate(booking, BookingStatus.RESCHEDULED)
        if data.status:
            self.lifecycle.validate(booking, data.status)
        return old_interval, new_start, new_end, time_changed

    @staticmethod
    def _apply_details(booking: Booking, data: BookingUpdate) -> None:
        if data.title is not None:
            if not data.title.strip():
                raise ValidationError("Title cannot be empty", field="title")
            booking.title = data.title.strip()
        if data.description is not None:
            booking.description = data.description
        if data.serviceId is not None:
            booking.service_id = data.serviceId
        if data.location is not None:
            booking.location = data.location
        if data.meetingUrl is not None:
            booking.meeting_url = data.meetingUrl
        if data.notes is not None:
            booking.notes = data.notes
        if data.attendees is not None:
            booking.attendees = [a.model_dump() for a in data.attendees]

    def _plan_sync(
        self,
        booking: Booking,
        action: str,
        previous_event_id: Optional[str],
        warnings: list[str],
    ) -> Optional[SyncRequest]:
        """Calendar push is needed when the booking is mirrored or the host syncs"""
        connection = get_connection(self.db, booking.host_id)
        active = bool(connection and connection.sync_enabled)
        if not active and not previous_event_id:
            return None

        if not active:
            warnings.append(
                "Google Calendar is not connected for this host; "
                "the linked calendar event was not changed"
            )
        elif action == ACTION_DELETE and not previous_event_id:
            return None
        else:
            booking.sync_status = SYNC_PENDING
            booking.sync_error = None
        return SyncRequest(booking.id, action, previous_event_id)

    def _invalidate(self, host: Optional[User], intervals: Iterable[tuple]) -> None:
        if host is None:
            return
        zone = host_zone(host.timezone)
        tags = {bookings_tag(host.id)}
        for start, end in intervals:
            for day in local_dates_between(start, end, zone):
                tags.add(slots_tag(host.id, day))
        self.cache.invalidate_tags(sorted(tags))


def _user_ref(user_id: Optional[int], user: Optional[User]) -> Optional[RelatedRef]:
    if user_id is None:
        return None
    if user is None:
        return RelatedRef(id=user_id, name="Unknown")
    return RelatedRef(id=user.id, name=user.full_name or user.email, email=user.email)


def to_response(booking: Booking, warnings: Optional[list[str]] = None) -> BookingResponse:
    """Expand relations; a missing related row renders as an "Unknown" placeholder"""
    client = booking.client
    service = booking.service

    if client is None:
        client_ref = RelatedRef(id=booking.client_id, name="Unknown")
    else:
        client_ref = RelatedRef(
            id=client.id, name=client.business_name or client.contact_name or "Unknown", email=client.email
        )

    service_ref = None
    if booking.service_id is not None:
        service_ref = RelatedRef(
            id=booking.service_id, name=service.name if service else "Unknown"
        )

    return BookingResponse(
        id=booking.id,
        title=booking.title,
        description=booking.description,
        hostId=booking.host_id,
        clientId=booking.client_id,
        serviceId=booking.service_id,
        startTime=as_utc(booking.start_time),
        endTime=as_utc(booking.end_time),
        duration=booking.duration,
        status=booking.status,
        location=booking.location,
        meetingUrl=booking.meeting_url,
        notes=booking.notes,
        attendees=booking.attendees or [],
        cancelReason=booking.cancel_reason,
        googleEventId=booking.google_event_id,
        syncStatus=booking.sync_status,
        syncError=booking.sync_error,
        createdBy=booking.created_by,
        createdAt=as_utc(booking.created_at),
        updatedAt=as_utc(booking.updated_at),
        client=client_ref,
        host=_user_ref(booking.host_id, booking.host),
        service=service_ref,
        creator=_user_ref(booking.created_by, booking.creator),
        warnings=warnings or [],
    )
