# library_booking/core/policy.py
"""Side-effect-free booking rules.

Each ``validate_*`` method returns quietly when the request is legal and
raises the matching ``PolicyViolation`` (or ``RenewalLimitExceeded``)
otherwise.
"""
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from library_booking.core.config import BookingPolicySettings, OperatingHours
from library_booking.core.errors import (
    EndBeforeStart,
    OccupancyUnauthorized,
    OutsideOperatingHours,
    RenewalLimitExceeded,
    StartInPast,
    WindowTooLong,
)
from library_booking.models.enum import BookingKind, ResourceStatus

SATURDAY = 5
SUNDAY = 6


class BookingPolicy:
    def __init__(self, settings: BookingPolicySettings):
        self.settings = settings
        self.tz = ZoneInfo(settings.timezone)

    # --- Windows ---
    @property
    def max_window(self) -> timedelta:
        return timedelta(days=self.settings.max_window_days)

    def default_window_end(self, now: datetime) -> datetime:
        return now + self.max_window

    def validate_window(self, start: datetime, end: datetime) -> None:
        if end > start + self.max_window:
            raise WindowTooLong(f"The return date must be within {self.settings.max_window_days} days.")

    def validate_chronology(self, start: datetime, end: datetime) -> None:
        if end < start:
            raise EndBeforeStart()

    def validate_reservation_length(self, start: datetime, end: datetime) -> None:
        if end - start > timedelta(hours=self.settings.max_reservation_hours):
            raise WindowTooLong(
                f"The reservation cannot last more than {self.settings.max_reservation_hours} hours."
            )

    def validate_not_in_past(self, start: datetime, now: datetime) -> None:
        if start < now:
            raise StartInPast()

    # --- Renewals ---
    def validate_renewal(self, current_renewal_count: int) -> int:
        """Return the attempted renewal count, rejecting it past the maximum."""
        attempted = current_renewal_count + 1
        if attempted > self.settings.max_renewals_per_booking:
            raise RenewalLimitExceeded(self.settings.max_renewals_per_booking)
        return attempted

    def renewal_end(self, current_end: datetime) -> datetime:
        # Compounds from the scheduled end, never from "now"
        return current_end + timedelta(days=self.settings.post_renewal_extension_days)

    # --- Rooms ---
    def validate_occupancy(self, people: int, minimum: Optional[int] = None, maximum: Optional[int] = None) -> None:
        minimum = self.settings.min_occupancy if minimum is None else minimum
        maximum = self.settings.max_occupancy if maximum is None else maximum
        if people < minimum or people > maximum:
            raise OccupancyUnauthorized(people, minimum, maximum)

    def operating_hours_for(self, day: datetime) -> Optional[OperatingHours]:
        weekday = day.weekday()
        if weekday == SUNDAY:
            return None
        if weekday == SATURDAY:
            return self.settings.saturday_operating_hours
        return self.settings.weekday_operating_hours

    def validate_within_operating_hours(self, start: datetime, end: datetime) -> None:
        local_start = start.astimezone(self.tz)
        local_end = end.astimezone(self.tz)
        hours = self.operating_hours_for(local_start)
        if hours is None:
            raise OutsideOperatingHours("Reservations are not accepted on Sundays.")
        opens_at = local_start.replace(hour=hours.start.hour, minute=hours.start.minute, second=0, microsecond=0)
        closes_at = local_start.replace(hour=hours.end.hour, minute=hours.end.minute, second=0, microsecond=0)
        if local_start < opens_at or local_end > closes_at:
            raise OutsideOperatingHours(
                f"The reservation must be within working hours "
                f"({hours.start:%H:%M}-{hours.end:%H:%M} on {local_start:%A})."
            )

    # --- Resource status ---
    def occupied_status(self, kind: BookingKind) -> ResourceStatus:
        return ResourceStatus.LENT if kind == BookingKind.LOAN else ResourceStatus.RESERVED

    def accepts_new_booking(self, kind: BookingKind, status: ResourceStatus) -> bool:
        """Books are single copy. Rooms take further non-overlapping reservations."""
        if status == ResourceStatus.AVAILABLE:
            return True
        return kind == BookingKind.RESERVATION and status == ResourceStatus.RESERVED
