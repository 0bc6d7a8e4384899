# library_booking/api/v1/endpoints/loans.py
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
from library_booking.core.security import get_current_active_user, require_staff
from library_booking.models.booking import Booking
from library_booking.models.enum import AuditAction, BookingKind, BookingStatus
from library_booking.models.user import UserAccount

router = APIRouter(tags=["Loans"])


# --- Endpoint POST / ---
@router.post("/", response_model=Booking.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/hour")
async def create_loan(
    request: Request,
    loan_in: Booking.LoanCreate = Body(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    """Request a loan of a book. The loan waits in PENDING until staff approve it."""
    requester_id = resolve_requester(current_user, loan_in.user_id)
    logger.info(f"User '{current_user.username}' requesting loan of book '{loan_in.book_id}' for '{requester_id}'.")
    loan = await engine.create(
        BookingKind.LOAN, requester_id, loan_in.book_id, explicit_end=loan_in.return_date
    )
    await audit(engine, current_user, AuditAction.CREATE_LOAN, loan)
    return to_response(loan)


# --- Endpoint GET / ---
@router.get("/", response_model=Booking.Page)
@limiter.limit("120/minute")
async def read_loans(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(25, ge=1, le=100),
    status: Optional[List[BookingStatus]] = Query(None),
    user_id: Optional[str] = Query(None),
    book_id: Optional[str] = Query(None),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    requester_id = restrict_listing(current_user, user_id)
    loans, total = await engine.list(
        BookingKind.LOAN, status=status, requester_id=requester_id, resource_id=book_id, skip=skip, limit=limit
    )
    return Booking.Page(data=[to_response(loan) for loan in loans], total=total, skip=skip, limit=limit)


# --- Endpoint GET /{loan_id} ---
@router.get("/{loan_id}", response_model=Booking.Response)
@limiter.limit("120/minute")
async def read_loan(
    request: Request,
    loan_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    return to_response(await get_booking_or_404(engine, BookingKind.LOAN, loan_id, current_user))


# --- Endpoint PATCH /{loan_id}/approve ---
@router.patch("/{loan_id}/approve", response_model=Booking.Response)
@limiter.limit("60/minute")
async def approve_loan(
    request: Request,
    loan_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(require_staff),
):
    logger.info(f"Staff '{current_user.username}' approving loan '{loan_id}'.")
    await get_booking_or_404(engine, BookingKind.LOAN, loan_id, current_user)
    loan = await engine.approve(loan_id)
    await audit(engine, current_user, AuditAction.APPROVE_LOAN, loan)
    return to_response(loan)


# --- Endpoint PUT /{loan_id}/renewal ---
@router.put("/{loan_id}/renewal", response_model=Booking.Response)
@limiter.limit("30/hour")
async def renew_loan(
    request: Request,
    loan_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(get_current_active_user),
):
    await get_booking_or_404(engine, BookingKind.LOAN, loan_id, current_user)
    loan = await engine.request_renewal(loan_id)
    await audit(engine, current_user, AuditAction.REQUEST_LOAN_RENEWAL, loan)
    return to_response(loan)


# --- Endpoint PUT /{loan_id}/finish ---
@router.put("/{loan_id}/finish", response_model=Booking.Response)
@limiter.limit("60/minute")
async def finish_loan(
    request: Request,
    loan_id: str = Path(...),
    engine: BookingLifecycleEngine = Depends(get_engine),
    current_user: UserAccount = Depends(require_staff),
):
    """Register the return of a book and make it available again."""
    logger.info(f"Staff '{current_user.username}' finishing loan '{loan_id}'.")
    await get_booking_or_404(engine, BookingKind.LOAN, loan_id, current_user)
    loan = await engine.complete(loan_id)
    await audit(engine, current_user, AuditAction.FINISH_LOAN, loan)
    return to_response(loan)
