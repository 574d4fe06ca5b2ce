"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session, joinedload

from ...models import OCCUPYING_STATUSES, ActivityLog, Booking, Client, Service, User


class BookingRepository:
    """Repository for booking database operations. Datetimes are naive UTC."""

    @staticmethod
    def _with_relations(query):
        return query.options(
            joinedload(Booking.client),
            joinedload(Booking.host),
            joinedload(Booking.service),
            joinedload(Booking.creator),
        )

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        """Get a booking with its related client, host, service and creator"""
        return (
            BookingRepository._with_relations(db.query(Booking))
            .filter(Booking.id == booking_id)
            .first()
        )

    @staticmethod
    def list_bookings(
        db: Session,
        host_id: Optional[int] = None,
        client_id: Optional[int] = None,
        status: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Booking]:
        """List bookings overlapping [start, end), ordered by start time"""
        query = BookingRepository._with_relations(db.query(Booking))

        if host_id is not None:
            query = query.filter(Booking.host_id == host_id)
        if client_id is not None:
            query = query.filter(Booking.client_id == client_id)
        if status:
            query = query.filter(Booking.status == status)
        if start is not None:
            query = query.filter(Booking.end_time > start)
        if end is not None:
            query = query.filter(Booking.start_time < end)

        return query.order_by(Booking.start_time.asc(), Booking.id.asc()).all()

    @staticmethod
    def find_overlapping(
        db: Session,
        host_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
        statuses: Sequence[str] = OCCUPYING_STATUSES,
    ) -> list[Booking]:
        """Bookings of the host whose half-open interval intersects [start, end)"""
        query = db.query(Booking).filter(
            Booking.host_id == host_id,
            Booking.status.in_(list(statuses)),
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.start_time.asc()).all()

    @staticmethod
    def lock_host(db: Session, host_id: int) -> Optional[User]:
        """Row lock on the host; serializes writers across processes on PostgreSQL"""
        return db.query(User).filter(User.id == host_id).with_for_update().first()

    @staticmethod
    def reload_for_update(db: Session, booking: Booking) -> Booking:
        """Re-read a booking under a row lock, discarding any stale state"""
        db.refresh(booking, with_for_update=True)
        return booking

    @staticmethod
    def add_booking(db: Session, **booking_data) -> Booking:
        """Stage a new booking; the caller commits"""
        booking = Booking(**booking_data)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_client(db: Session, client_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id).first()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def log_activity(
        db: Session,
        user_id: Optional[int],
        entity_type: str,
        entity_id,
        action: str,
        client_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> ActivityLog:
        """Stage an activity log entry; the caller commits"""
        entry = ActivityLog(
            user_id=user_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            client_id=client_id,
            action=action,
            details=details or {},
        )
        db.add(entry)
        return entry
