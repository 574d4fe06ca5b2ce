"""Scheduling router - FastAPI endpoints for availability and bookings"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import DEFAULT_SLOT_DURATION
from ...database import get_db
from ...models import User
from ...services.google_calendar_service import sync_booking_event
from .schemas import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    AvailabilityUpdate,
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingUpdate,
    SlotsResponse,
    WorkingHoursWindowSchema,
)
from .service import AvailabilityService, BookingOutcome, BookingService, to_response

logger = logging.getLogger(__name__)

availability_router = APIRouter(prefix="/availability", tags=["Availability"])
bookings_router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def _respond(outcome: BookingOutcome, background_tasks: BackgroundTasks) -> BookingResponse:
    """Schedule the calendar push (runs after the response) and serialize"""
    if outcome.sync:
        background_tasks.add_task(
            sync_booking_event,
            outcome.sync.booking_id,
            outcome.sync.action,
            outcome.sync.google_event_id,
        )
    return to_response(outcome.booking, outcome.warnings)


# ============================================================================
# WORKING HOURS
# ============================================================================


@availability_router.get("", response_model=list[WorkingHoursWindowSchema])
async def get_availability(
    hostId: Optional[int] = Query(None),
    userId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Weekly working hours, Sunday first; defaults apply if never configured"""
    host_id = hostId or userId or current_user.id
    return service.get_week(host_id, current_user)


@availability_router.post("", response_model=list[WorkingHoursWindowSchema])
async def save_availability(
    data: AvailabilityUpdate,
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Replace the host's full week"""
    host_id = data.userId or current_user.id
    return service.save_week(host_id, data.slots, current_user)


# ============================================================================
# SLOTS AND CONFLICT CHECKS
# ============================================================================


@bookings_router.get("/slots", response_model=SlotsResponse)
async def get_available_slots(
    hostId: int = Query(...),
    date: str = Query(..., description="YYYY-MM-DD or ISO timestamp"),
    duration: int = Query(DEFAULT_SLOT_DURATION),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Free slots of the requested duration on the host's local date"""
    result = service.get_slots(hostId, date, duration)
    return SlotsResponse(
        slots=[{"start": s.start, "end": s.end} for s in result["slots"]],
        date=result["date"],
        duration=result["duration"],
        hostId=result["hostId"],
    )


@bookings_router.post("/availability", response_model=AvailabilityCheckResponse)
async def check_availability(
    data: AvailabilityCheckRequest,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Advisory conflict check for an interval"""
    return service.check_availability(data)


# ============================================================================
# BOOKINGS
# ============================================================================


@bookings_router.get("", response_model=list[BookingResponse])
async def list_bookings(
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    clientId: Optional[int] = Query(None),
    hostId: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings overlapping the range, ordered by start time"""
    bookings = service.list_bookings(current_user, startDate, endDate, status, clientId, hostId)
    return [to_response(b) for b in bookings]


@bookings_router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking; 409 with the conflicting bookings if the slot is taken"""
    outcome = service.create_booking(data, current_user)
    return _respond(outcome, background_tasks)


@bookings_router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return to_response(service.get_booking(booking_id, current_user))


@bookings_router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Partial update; time changes reschedule, status drives a transition"""
    outcome = service.update_booking(booking_id, data, current_user)
    return _respond(outcome, background_tasks)


@bookings_router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[BookingCancel] = Body(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel (the booking is kept with status CANCELLED)"""
    reason = data.reason if data else None
    outcome = service.cancel_booking(booking_id, reason, current_user)
    return _respond(outcome, background_tasks)
