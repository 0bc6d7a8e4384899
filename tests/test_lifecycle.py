from datetime import datetime, timedelta, timezone

import pytest

from library_booking.core.errors import (
    AlreadyApproved,
    AlreadyBooked,
    AlreadyFinished,
    BookingNotFound,
    CannotApprove,
    EndBeforeStart,
    NotApproved,
    OccupancyUnauthorized,
    OutsideOperatingHours,
    RenewalLimitExceeded,
    RenewalNotAllowed,
    RequesterNotFound,
    ResourceNotAvailable,
    ResourceNotFound,
    StartInPast,
    WindowTooLong,
)
from library_booking.models.booking import ApprovalCommand, RenewalCommand
from library_booking.models.enum import BookingKind, BookingStatus, ResourceKind, ResourceStatus

from conftest import NOW

LOAN = BookingKind.LOAN
RESERVATION = BookingKind.RESERVATION


def monday(hour: int, minute: int = 0) -> datetime:
    return NOW.replace(hour=hour, minute=minute)


async def resource_status(store, kind, resource_id) -> ResourceStatus:
    return (await store.directory.get(kind, resource_id)).status


async def reserve(engine, start, end, people=3, requester="member-1"):
    return await engine.create(RESERVATION, requester, "room-1", explicit_end=end, occupancy=people, explicit_start=start)


# --- create: loans ---
async def test_second_loan_of_lent_book_is_already_booked(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")

    assert loan.status == BookingStatus.PENDING
    assert loan.renewal_count == 0
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.LENT

    with pytest.raises(AlreadyBooked):
        await engine.create(LOAN, "member-2", "book-1")
    assert await store.bookings.count_open(LOAN, "book-1") == 1


async def test_loan_without_end_gets_default_window(engine):
    loan = await engine.create(LOAN, "member-1", "book-1")
    assert loan.window_start == NOW
    assert loan.window_end == NOW + timedelta(days=15)


async def test_loan_with_explicit_end(engine):
    loan = await engine.create(LOAN, "member-1", "book-1", explicit_end=NOW + timedelta(days=3))
    assert loan.window_end == NOW + timedelta(days=3)


async def test_loan_return_date_in_the_past_is_rejected(engine, store):
    with pytest.raises(EndBeforeStart):
        await engine.create(LOAN, "member-1", "book-1", explicit_end=NOW - timedelta(days=1))
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.AVAILABLE


async def test_loan_window_too_long_writes_nothing(engine, store):
    with pytest.raises(WindowTooLong):
        await engine.create(LOAN, "member-1", "book-1", explicit_end=NOW + timedelta(days=16))
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.AVAILABLE
    assert await store.bookings.count_open(LOAN, "book-1") == 0


async def test_unavailable_book_is_rejected_without_writes(engine, store):
    with pytest.raises(ResourceNotAvailable):
        await engine.create(LOAN, "member-1", "book-3")
    assert await resource_status(store, ResourceKind.BOOK, "book-3") == ResourceStatus.NOT_AVAILABLE
    items, total = await store.bookings.list(LOAN)
    assert total == 0


async def test_lent_book_without_open_loan_is_not_available(engine, store):
    await store.directory.set_status(ResourceKind.BOOK, "book-2", ResourceStatus.LENT)
    with pytest.raises(ResourceNotAvailable):
        await engine.create(LOAN, "member-1", "book-2")


async def test_unknown_resource_and_requester(engine):
    with pytest.raises(ResourceNotFound):
        await engine.create(LOAN, "member-1", "missing-book")
    with pytest.raises(RequesterNotFound):
        await engine.create(LOAN, "ghost", "book-1")


async def test_failed_status_write_rolls_back_the_booking(engine, store, monkeypatch):
    async def broken_set_status(*args, **kwargs):
        raise RuntimeError("storage down")

    monkeypatch.setattr(store.directory, "set_status", broken_set_status)
    with pytest.raises(RuntimeError):
        await engine.create(LOAN, "member-1", "book-1")
    assert await store.bookings.count_open(LOAN, "book-1") == 0


# --- create: reservations ---
async def test_reservation_starts_active_and_reserves_room(engine, store):
    reservation = await reserve(engine, monday(12), monday(14))
    assert reservation.status == BookingStatus.ACTIVE
    assert reservation.occupancy == 3
    assert await resource_status(store, ResourceKind.ROOM, "room-1") == ResourceStatus.RESERVED


async def test_reservation_before_saturday_opening(engine):
    saturday = datetime(2024, 6, 8, tzinfo=timezone.utc)
    with pytest.raises(OutsideOperatingHours):
        await reserve(engine, saturday.replace(hour=7), saturday.replace(hour=8, minute=30))


async def test_reservation_occupancy_uses_room_bounds(engine):
    with pytest.raises(OccupancyUnauthorized):
        await reserve(engine, monday(12), monday(13), people=1)
    with pytest.raises(OccupancyUnauthorized):
        await reserve(engine, monday(12), monday(13), people=7)


async def test_reservation_chronology_length_and_past(engine):
    with pytest.raises(EndBeforeStart):
        await reserve(engine, monday(14), monday(12))
    with pytest.raises(WindowTooLong):
        await reserve(engine, monday(11), monday(16))
    with pytest.raises(StartInPast):
        await reserve(engine, monday(9), monday(10))


async def test_room_takes_non_overlapping_reservations(engine, store):
    await reserve(engine, monday(12), monday(14))
    await reserve(engine, monday(15), monday(16), requester="member-2")

    # Touching the first window at 14:00 is already a conflict
    with pytest.raises(AlreadyBooked):
        await reserve(engine, monday(14), monday(14, 30), requester="member-2")
    assert await store.bookings.count_open(RESERVATION, "room-1") == 2


async def test_room_is_released_only_after_last_reservation(engine, store):
    first = await reserve(engine, monday(12), monday(14))
    second = await reserve(engine, monday(15), monday(16))

    await engine.complete(first.id)
    assert await resource_status(store, ResourceKind.ROOM, "room-1") == ResourceStatus.RESERVED

    await engine.complete(second.id)
    assert await resource_status(store, ResourceKind.ROOM, "room-1") == ResourceStatus.AVAILABLE


# --- approve ---
async def test_approve_pending_loan(engine):
    loan = await engine.create(LOAN, "member-1", "book-1")
    approved = await engine.approve(loan.id)
    assert approved.status == BookingStatus.ACTIVE


async def test_approve_twice_and_after_finish(engine):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.approve(loan.id)
    with pytest.raises(AlreadyApproved):
        await engine.approve(loan.id)

    await engine.complete(loan.id)
    with pytest.raises(CannotApprove):
        await engine.approve(loan.id)


async def test_approve_after_renewal_is_already_approved(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.approve(loan.id)
    await engine.request_renewal(loan.id)

    with pytest.raises(AlreadyApproved):
        await engine.approve(loan.id)
    stored = await store.bookings.get(loan.id)
    assert (stored.status, stored.renewal_count) == (BookingStatus.RENEWED, 1)


async def test_approval_write_only_applies_to_pending(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.approve(loan.id)
    await engine.request_renewal(loan.id)

    # A stale approval that read PENDING before the renewal landed
    assert await store.bookings.apply(loan.id, ApprovalCommand(updated_at=NOW)) is None
    assert (await store.bookings.get(loan.id)).status == BookingStatus.RENEWED


async def test_renewal_write_requires_approval(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    command = RenewalCommand(window_end=NOW + timedelta(days=30), renewal_count=1, updated_at=NOW)
    assert await store.bookings.apply(loan.id, command) is None


async def test_approve_missing_booking(engine):
    with pytest.raises(BookingNotFound):
        await engine.approve("does-not-exist")


# --- renew ---
async def test_renewals_compound_from_scheduled_end(engine, clock):
    loan = await engine.create(LOAN, "member-1", "book-1", explicit_end=NOW + timedelta(days=5))
    await engine.approve(loan.id)

    clock.now = NOW + timedelta(days=1)
    renewed = await engine.request_renewal(loan.id)
    assert renewed.status == BookingStatus.RENEWED
    assert renewed.renewal_count == 1
    assert renewed.window_end == NOW + timedelta(days=12)

    clock.now = NOW + timedelta(days=2)
    renewed = await engine.request_renewal(loan.id)
    assert renewed.renewal_count == 2
    assert renewed.window_end == NOW + timedelta(days=19)


async def test_renewal_limit(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.approve(loan.id)
    for _ in range(2):
        await engine.request_renewal(loan.id)

    with pytest.raises(RenewalLimitExceeded):
        await engine.request_renewal(loan.id)
    stored = await store.bookings.get(loan.id)
    assert stored.renewal_count == 2


async def test_renewal_of_finished_booking(engine):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.complete(loan.id)
    with pytest.raises(AlreadyFinished):
        await engine.request_renewal(loan.id)


async def test_pending_loan_cannot_be_renewed(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    with pytest.raises(NotApproved):
        await engine.request_renewal(loan.id)

    stored = await store.bookings.get(loan.id)
    assert (stored.status, stored.renewal_count) == (BookingStatus.PENDING, 0)
    approved = await engine.approve(loan.id)
    assert approved.status == BookingStatus.ACTIVE


async def test_reservation_cannot_be_renewed(engine, store):
    reservation = await reserve(engine, monday(12), monday(14))
    with pytest.raises(RenewalNotAllowed):
        await engine.request_renewal(reservation.id)

    stored = await store.bookings.get(reservation.id)
    assert stored.window_end == monday(14)
    assert stored.renewal_count == 0


async def test_renewal_missing_booking(engine):
    with pytest.raises(BookingNotFound):
        await engine.request_renewal("does-not-exist")


# --- complete ---
async def test_complete_releases_book(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.approve(loan.id)

    finished = await engine.complete(loan.id)

    assert finished.status == BookingStatus.FINISHED
    assert finished.completed_at == NOW
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.AVAILABLE


async def test_complete_twice(engine, store, clock):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.complete(loan.id)

    clock.now = NOW + timedelta(hours=1)
    with pytest.raises(AlreadyFinished):
        await engine.complete(loan.id)
    stored = await store.bookings.get(loan.id)
    assert stored.completed_at == NOW
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.AVAILABLE


async def test_complete_leaves_administrative_status(engine, store):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await store.directory.set_status(ResourceKind.BOOK, "book-1", ResourceStatus.NOT_AVAILABLE)
    await engine.complete(loan.id)
    assert await resource_status(store, ResourceKind.BOOK, "book-1") == ResourceStatus.NOT_AVAILABLE


async def test_book_can_be_lent_again_after_return(engine):
    loan = await engine.create(LOAN, "member-1", "book-1")
    await engine.complete(loan.id)
    again = await engine.create(LOAN, "member-2", "book-1")
    assert again.status == BookingStatus.PENDING


# --- queries ---
async def test_list_filters(engine):
    await engine.create(LOAN, "member-1", "book-1")
    second = await engine.create(LOAN, "member-2", "book-2")
    await engine.approve(second.id)
    await reserve(engine, monday(12), monday(14))

    loans, total = await engine.list(LOAN)
    assert total == 2
    assert {loan.kind for loan in loans} == {LOAN}

    loans, total = await engine.list(LOAN, requester_id="member-2")
    assert total == 1 and loans[0].id == second.id

    loans, total = await engine.list(LOAN, status=[BookingStatus.PENDING])
    assert total == 1 and loans[0].resource_id == "book-1"

    page, total = await engine.list(LOAN, skip=1, limit=1)
    assert total == 2 and len(page) == 1
