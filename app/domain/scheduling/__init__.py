"""
Scheduling Domain

Host working hours, free slot computation, conflict detection and the
booking lifecycle. Google Calendar mirroring is delegated to
app.services.google_calendar_service and runs after the response.

Structure:
```
app/domain/scheduling/
├── schemas.py        # Request/response models
├── repository.py     # Booking queries
├── working_hours.py  # Weekly windows, defaults and validation
├── slots.py          # Free slot computation
├── conflicts.py      # Half-open overlap checks
├── lifecycle.py      # Status state machine
├── locks.py          # Per-host write serialization
├── service.py        # Orchestration, caching, activity log
└── router.py         # /availability and /bookings endpoints
```
"""

from .router import availability_router, bookings_router

__all__ = ["availability_router", "bookings_router"]
