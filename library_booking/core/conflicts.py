# library_booking/core/conflicts.py
import logging
from datetime import datetime
from typing import Any, Optional

from library_booking.models.booking import Booking
from library_booking.models.enum import BookingKind, BookingStatus
from library_booking.repositories.base import BookingRepository

logger = logging.getLogger(__name__)


def windows_overlap(
    existing_start: datetime, existing_end: datetime, proposed_start: datetime, proposed_end: datetime
) -> bool:
    """Closed-interval intersection: a single shared instant is a conflict."""
    return existing_start <= proposed_end and proposed_start <= existing_end


def booking_overlaps(
    booking: Booking,
    exclude_status: BookingStatus,
    window_start: datetime,
    window_end: datetime,
) -> bool:
    if booking.status == exclude_status:
        return False
    return windows_overlap(booking.window_start, booking.occupied_until, window_start, window_end)


class ConflictDetector:
    """Finds an existing non-terminal booking that overlaps a proposed window."""

    def __init__(self, bookings: BookingRepository):
        self.bookings = bookings

    async def find_overlap(
        self,
        kind: BookingKind,
        resource_id: str,
        requester_id: Optional[str],
        exclude_status: BookingStatus,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[str] = None,
        session: Any = None,
    ) -> Optional[Booking]:
        # The requester never narrows the match: any holder of the resource conflicts
        overlap = await self.bookings.find_overlapping(
            kind,
            resource_id,
            exclude_status,
            window_start,
            window_end,
            exclude_booking_id=exclude_booking_id,
            session=session,
        )
        if overlap is not None:
            logger.info(
                f"Overlap for {kind.value} on {resource_id} requested by {requester_id}: "
                f"[{window_start.isoformat()} - {window_end.isoformat()}] hits booking {overlap.id}"
            )
        return overlap
