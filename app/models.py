import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    SERVICE_MANAGER = "SERVICE_MANAGER"
    TEAM_MEMBER = "TEAM_MEMBER"
    CLIENT = "CLIENT"


# Roles allowed to manage calendars, availability and bookings for any host
MANAGER_ROLES = (UserRole.ADMIN.value, UserRole.SERVICE_MANAGER.value)


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


# Statuses that block the booked interval on the host's calendar
OCCUPYING_STATUSES = (
    BookingStatus.PENDING.value,
    BookingStatus.CONFIRMED.value,
    BookingStatus.RESCHEDULED.value,
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(50), default=UserRole.TEAM_MEMBER.value, nullable=False)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. America/New_York

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking_slots = relationship(
        "BookingSlot", back_populates="user", cascade="all, delete-orphan"
    )
    hosted_bookings = relationship(
        "Booking", back_populates="host", foreign_keys="Booking.host_id"
    )


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    status = Column(String(50), default="active")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="client")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    price = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())


class BookingSlot(Base):
    """Weekly working-hours window of a host (one row per day of week)"""

    __tablename__ = "booking_slots"
    __table_args__ = (UniqueConstraint("user_id", "day_of_week", name="uq_booking_slot_user_day"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0=Sunday ... 6=Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="booking_slots")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_host_start", "host_id", "start_time"),)

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(String(2000), nullable=True)
    location = Column(String(500), nullable=True)
    meeting_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)  # Internal only, never sent to the calendar provider
    attendees = Column(JSON, nullable=True)  # [{"name": ..., "email": ...}]

    # Stored as naive UTC
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes, end_time - start_time

    status = Column(String(20), default=BookingStatus.PENDING.value, nullable=False)
    cancel_reason = Column(String(1000), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Google Calendar integration fields
    google_event_id = Column(String(500), nullable=True, index=True)
    sync_status = Column(String(20), nullable=True)  # synced, failed, skipped
    sync_error = Column(String(1000), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    host = relationship("User", back_populates="hosted_bookings", foreign_keys=[host_id])
    creator = relationship("User", foreign_keys=[created_by])
    client = relationship("Client", back_populates="bookings")
    service = relationship("Service")


class ActivityLog(Base):
    """Audit trail feeding the dashboard activity feed"""

    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entity_type = Column(String(50), nullable=False)  # booking, availability, calendar_connection
    entity_id = Column(String(64), nullable=False)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    action = Column(String(50), nullable=False)  # created, updated, cancelled, ...
    details = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
