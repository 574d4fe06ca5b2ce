"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email, validate_meeting_url


class WorkingHoursWindowSchema(BaseModel):
    """One day of a host's weekly working hours"""

    dayOfWeek: int = Field(..., ge=0, le=6)
    startTime: str
    endTime: str
    isActive: bool


class AvailabilityUpdate(BaseModel):
    """Replaces the full week; exactly one entry per day 0-6"""

    userId: Optional[int] = None
    slots: list[WorkingHoursWindowSchema]


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class SlotsResponse(BaseModel):
    slots: list[SlotResponse]
    date: str
    duration: int
    hostId: int


class AvailabilityCheckRequest(BaseModel):
    hostId: int
    startTime: datetime
    endTime: datetime
    excludeBookingId: Optional[int] = None


class ConflictSummary(BaseModel):
    id: int
    title: str
    status: str
    startTime: datetime
    endTime: datetime


class AvailabilityCheckResponse(BaseModel):
    available: bool
    hostId: int
    startTime: datetime
    endTime: datetime
    conflicts: list[ConflictSummary] = []


class Attendee(BaseModel):
    name: str
    email: str

    @field_validator("email")
    @classmethod
    def validate_attendee_email(cls, v):
        return validate_email(v)


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    title: str = Field(..., min_length=1)
    clientId: int
    serviceId: Optional[int] = None
    hostId: int
    startTime: datetime
    endTime: datetime
    description: Optional[str] = None
    location: Optional[str] = None
    meetingUrl: Optional[str] = None
    attendees: Optional[list[Attendee]] = None
    notes: Optional[str] = None
    status: Literal["PENDING", "CONFIRMED"] = "CONFIRMED"

    @field_validator("meetingUrl")
    @classmethod
    def validate_meeting(cls, v):
        return validate_meeting_url(v)


class BookingUpdate(BaseModel):
    """Partial update; a time change reschedules, a status drives a transition"""

    title: Optional[str] = None
    description: Optional[str] = None
    serviceId: Optional[int] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    location: Optional[str] = None
    meetingUrl: Optional[str] = None
    attendees: Optional[list[Attendee]] = None
    notes: Optional[str] = None
    status: Optional[Literal["CONFIRMED", "CANCELLED", "COMPLETED", "NO_SHOW"]] = None

    @field_validator("meetingUrl")
    @classmethod
    def validate_meeting(cls, v):
        return validate_meeting_url(v)


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class RelatedRef(BaseModel):
    """Expanded relation; name is "Unknown" when the referenced row is missing"""

    id: Optional[int] = None
    name: str
    email: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    hostId: int
    clientId: int
    serviceId: Optional[int] = None
    startTime: datetime
    endTime: datetime
    duration: int
    status: str
    location: Optional[str] = None
    meetingUrl: Optional[str] = None
    notes: Optional[str] = None
    attendees: list[Attendee] = []
    cancelReason: Optional[str] = None
    googleEventId: Optional[str] = None
    syncStatus: Optional[str] = None
    syncError: Optional[str] = None
    createdBy: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    client: RelatedRef
    host: RelatedRef
    service: Optional[RelatedRef] = None
    creator: Optional[RelatedRef] = None
    warnings: list[str] = []
