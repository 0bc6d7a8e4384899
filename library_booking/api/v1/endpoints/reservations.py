# library_booking/api/v1/endpoints/reservations.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from loguru import logger

from library_booking.api.deps import get_engine
from library_booking.api.v1.endpoints.common import (
    audit,
    get_booking_or_404,
    resolve_requester,
    restrict_listing,
    to_response,
)
from library_booking.core.lifecycle import BookingLifecycleEngine
from library_booking.core.rate_limiter import limiter
from library_booking.core.security import get_current_active_user
from library_booking.models.booking import Booking
from library_booking.models.enum import AuditAction, BookingKind, BookingStatus
from library_booking.models.user import UserAccount

router = APIRouter(tags=["Reservations"])


@router.post("/", response_model=Booking.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/hour")
async def create_reservation(
    request: Request,
    reservation_in: Booking.ReservationCreate = Body(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    """Reserve a room for a group. Reservations are active immediately."""
    requester_id = resolve_requester(current_user, reservation_in.user_id)
    logger.info(
        f"User '{current_user.username}' reserving room '{reservation_in.room_id}' "
        f"for {reservation_in.people} people from {reservation_in.start_date.isoformat()}."
    )
    reservation = await engine.create(
        BookingKind.RESERVATION,
        requester_id,
        reservation_in.room_id,
        explicit_end=reservation_in.finish_date,
        occupancy=reservation_in.people,
        explicit_start=reservation_in.start_date,
    )
    await audit(engine, current_user, AuditAction.CREATE_RESERVATION, reservation)
    return to_response(reservation)


@router.get("/", response_model=Booking.Page)
@limiter.limit("120/minute")
async def read_reservations(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(25, ge=1, le=100),
    status: Optional[List[BookingStatus]] = Query(None),
    user_id: Optional[str] = Query(None),
    room_id: Optional[str] = Query(None),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    requester_id = restrict_listing(current_user, user_id)
    reservations, total = await engine.list(
        BookingKind.RESERVATION, status=status, requester_id=requester_id, resource_id=room_id, skip=skip, limit=limit
    )
    return Booking.Page(data=[to_response(r) for r in reservations], total=total, skip=skip, limit=limit)


@router.get("/{reservation_id}", response_model=Booking.Response)
@limiter.limit("120/minute")
async def read_reservation(
    request: Request,
    reservation_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    return to_response(await get_booking_or_404(engine, BookingKind.RESERVATION, reservation_id, current_user))


@router.put("/{reservation_id}/finish", response_model=Booking.Response)
@limiter.limit("60/minute")
async def finish_reservation(
    request: Request,
    reservation_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    await get_booking_or_404(engine, BookingKind.RESERVATION, reservation_id, current_user)
    reservation = await engine.complete(reservation_id)
    await audit(engine, current_user, AuditAction.FINISH_RESERVATION, reservation)
    return to_response(reservation)
