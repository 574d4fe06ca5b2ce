"""Scheduling domain errors - translated to HTTP responses in main.py"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for every error raised by the scheduling core"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "error": type(self).__name__}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(SchedulingError):
    """Malformed input: bad time range, non-positive duration, incomplete week"""

    status_code = 400


class NotFoundError(SchedulingError):
    status_code = 404


class PermissionDeniedError(SchedulingError):
    status_code = 403


class ConflictError(SchedulingError):
    """Requested interval overlaps one or more occupying bookings"""

    status_code = 409

    def __init__(self, message: str, conflicts: Optional[list] = None):
        super().__init__(message)
        self.conflicts = conflicts or []
        # Snapshot before the caller rolls back
        self.conflict_details = [
            {
                "id": b.id,
                "title": b.title,
                "status": b.status,
                "startTime": b.start_time.isoformat() + "Z",
                "endTime": b.end_time.isoformat() + "Z",
            }
            for b in self.conflicts
        ]

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["conflicts"] = self.conflict_details
        return payload


class InvalidStateError(SchedulingError):
    """Illegal lifecycle transition; the booking is left untouched"""

    status_code = 409

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        super().__init__(message or f"Cannot move booking from {current} to {requested}")
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["currentStatus"] = self.current
        payload["requestedStatus"] = self.requested
        return payload
