"""
Attendance domain errors.
Each error carries the HTTP status the API layer answers with.
"""
from typing import Optional

from .time_rules import round_half_up


class AttendanceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(AttendanceError):
    status_code = 400
    default_message = "Invalid request"


class InvalidRange(ValidationError):
    default_message = "Clock-out time must be after clock-in time"


class NotClockedIn(ValidationError):
    default_message = "Clock-in not registered"


class PermissionDenied(AttendanceError):
    status_code = 403
    default_message = "Forbidden"


class GeofenceError(AttendanceError):
    status_code = 400
    default_message = "Location check failed"


class MissingLocation(GeofenceError):
    default_message = "GPS location is required"


class OutOfRange(GeofenceError):
    def __init__(self, distance_meters: float, max_meters: int):
        self.distance_meters = distance_meters
        self.max_meters = max_meters
        super().__init__(
            f"You are {round_half_up(distance_meters)}m from the company. Maximum allowed: {max_meters}m"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["distanceMeters"] = round_half_up(self.distance_meters)
        data["maxMeters"] = self.max_meters
        return data


class ConflictError(AttendanceError):
    status_code = 409
    default_message = "Conflict"


class AlreadyClockedIn(ConflictError):
    default_message = "Clock-in already registered"


class AlreadyClockedOut(ConflictError):
    default_message = "Clock-out already registered"


class NotFoundError(AttendanceError):
    status_code = 404
    default_message = "Not found"


class InternalError(AttendanceError):
    status_code = 500
    default_message = "Error processing attendance"
