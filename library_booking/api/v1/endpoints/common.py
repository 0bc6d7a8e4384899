# library_booking/api/v1/endpoints/common.py
from typing import Optional

from fastapi import HTTPException

from library_booking.core.errors import BookingNotFound
from library_booking.core.lifecycle import BookingLifecycleEngine
from library_booking.core.security import ensure_can_act_for
from library_booking.models.booking import Booking
from library_booking.models.enum import AuditAction, BookingKind
from library_booking.models.user import UserAccount


def resolve_requester(current_user: UserAccount, user_id: Optional[str]) -> str:
    """The caller books for themself unless staff names another user."""
    requester_id = user_id or current_user.id
    ensure_can_act_for(current_user, requester_id)
    return requester_id


async def get_booking_or_404(
    engine: BookingLifecycleEngine, kind: BookingKind, booking_id: str, current_user: UserAccount
) -> Booking:
    booking = await engine.get(booking_id)
    if booking.kind != kind:
        raise BookingNotFound(booking_id)
    ensure_can_act_for(current_user, booking.requester_id)
    return booking


def restrict_listing(current_user: UserAccount, user_id: Optional[str]) -> Optional[str]:
    if current_user.is_staff:
        return user_id
    if user_id and user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Users can only view their own bookings.")
    return current_user.id


async def audit(engine: BookingLifecycleEngine, current_user: UserAccount, action: AuditAction, booking: Booking):
    await engine.store.audit_logs.record(current_user.id, action, booking.id)


def to_response(booking: Booking) -> Booking.Response:
    return Booking.Response.model_validate(booking)
