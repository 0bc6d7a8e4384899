# library_booking/core/errors.py
"""Typed failures raised by the booking core.

Every error carries a stable machine-readable ``kind`` and the HTTP status the
API layer answers with. Messages are safe to show to the caller.
"""
from typing import Optional


class BookingError(Exception):
    kind: str = "BookingError"
    status_code: int = 400
    default_message: str = "The booking request could not be processed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "kind": self.kind}


# --- Not found ---
class NotFoundError(BookingError):
    kind = "NotFound"
    status_code = 404
    default_message = "Object not found."


class ResourceNotFound(NotFoundError):
    kind = "ResourceNotFound"

    def __init__(self, resource_kind: str, resource_id: str):
        super().__init__(f"{resource_kind.capitalize()} '{resource_id}' not found.")


class BookingNotFound(NotFoundError):
    kind = "BookingNotFound"

    def __init__(self, booking_id: str):
        super().__init__(f"Booking '{booking_id}' not found.")


class RequesterNotFound(NotFoundError):
    kind = "RequesterNotFound"

    def __init__(self, requester_id: str):
        super().__init__(f"User '{requester_id}' not found.")


# --- Availability / conflicts ---
class ResourceNotAvailable(BookingError):
    kind = "ResourceNotAvailable"
    status_code = 409

    def __init__(self, resource_kind: str, status: str):
        super().__init__(f"{resource_kind.capitalize()} is not available (status: {status}).")


class AlreadyBooked(BookingError):
    kind = "AlreadyBooked"
    status_code = 409
    default_message = "The resource is already booked for an overlapping period."


class ResourceBusy(BookingError):
    kind = "ResourceBusy"
    status_code = 409
    default_message = "The resource is being booked by another request. Try again."


# --- Policy rejections ---
class PolicyViolation(BookingError):
    kind = "PolicyViolation"
    status_code = 400


class WindowTooLong(PolicyViolation):
    kind = "WindowTooLong"
    default_message = "The requested booking window is longer than allowed."


class EndBeforeStart(PolicyViolation):
    kind = "EndBeforeStart"
    default_message = "Finish date cannot be before start date."


class OutsideOperatingHours(PolicyViolation):
    kind = "OutsideOperatingHours"
    default_message = "The reservation must be within working hours."


class OccupancyUnauthorized(PolicyViolation):
    kind = "OccupancyUnauthorized"

    def __init__(self, people: int, minimum: int, maximum: int):
        super().__init__(f"Room admits between {minimum} and {maximum} people, got {people}.")


class StartInPast(PolicyViolation):
    kind = "StartInPast"
    default_message = "The reservation cannot start in the past."


class RenewalLimitExceeded(BookingError):
    kind = "RenewalLimitExceeded"
    status_code = 400

    def __init__(self, maximum: int):
        super().__init__(f"The booking has exceeded the {maximum} authorized renewals.")


# --- Status preconditions ---
class AlreadyFinished(BookingError):
    kind = "AlreadyFinished"
    status_code = 409
    default_message = "This booking has already been finished."


class AlreadyApproved(BookingError):
    kind = "AlreadyApproved"
    status_code = 409
    default_message = "This booking has already been approved."


class CannotApprove(BookingError):
    kind = "CannotApprove"
    status_code = 409
    default_message = "This booking cannot be approved because its status is not pending."


class NotApproved(BookingError):
    kind = "NotApproved"
    status_code = 409
    default_message = "This booking must be approved before it can be renewed."


class RenewalNotAllowed(PolicyViolation):
    kind = "RenewalNotAllowed"
    default_message = "Room reservations cannot be renewed. Book a new slot instead."
