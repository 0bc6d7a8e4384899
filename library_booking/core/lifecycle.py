# library_booking/core/lifecycle.py
"""Booking lifecycle: PENDING -> ACTIVE -> (RENEWED)* -> FINISHED.

Loans start PENDING and wait for staff approval; reservations start ACTIVE
and are never renewed.
The engine is the only writer of a resource's status, and it always writes it
right after the matching booking write, inside one store transaction and
while holding the resource lock.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field

from library_booking.core.conflicts import ConflictDetector
from library_booking.core.errors import (
    AlreadyApproved,
    AlreadyBooked,
    AlreadyFinished,
    BookingNotFound,
    CannotApprove,
    NotApproved,
    RenewalNotAllowed,
    RequesterNotFound,
    ResourceNotAvailable,
)
from library_booking.core.policy import BookingPolicy
from library_booking.models.booking import (
    ApprovalCommand,
    Booking,
    CompletionCommand,
    RenewalCommand,
    as_utc,
)
from library_booking.models.enum import (
    RENEWABLE_STATUSES,
    BookingKind,
    BookingStatus,
    ResourceKind,
    ResourceStatus,
)
from library_booking.models.resource import Resource
from library_booking.repositories.base import BookingStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusRepair(BaseModel):
    kind: ResourceKind
    resource_id: str
    previous: ResourceStatus
    status: ResourceStatus


class ReconciliationReport(BaseModel):
    checked: int = 0
    repaired: List[StatusRepair] = Field(default_factory=list)


class BookingLifecycleEngine:
    def __init__(
        self,
        store: BookingStore,
        policy: BookingPolicy,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.policy = policy
        self.detector = ConflictDetector(store.bookings)
        self.clock = clock or utcnow

    # --- Queries ---
    async def get(self, booking_id: str) -> Booking:
        booking = await self.store.bookings.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def list(
        self,
        kind: BookingKind,
        status: Optional[List[BookingStatus]] = None,
        requester_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 25,
    ) -> Tuple[List[Booking], int]:
        return await self.store.bookings.list(
            kind, status=status, requester_id=requester_id, resource_id=resource_id, skip=skip, limit=limit
        )

    # --- Create ---
    async def create(
        self,
        kind: BookingKind,
        requester_id: str,
        resource_id: str,
        explicit_end: Optional[datetime] = None,
        occupancy: Optional[int] = None,
        explicit_start: Optional[datetime] = None,
    ) -> Booking:
        kind = BookingKind(kind)
        resource_kind = kind.resource_kind
        now = self.clock()

        async with self.store.resource_lock(resource_kind, resource_id):
            async with self.store.transaction() as session:
                resource = await self.store.directory.get(resource_kind, resource_id, session=session)
                if await self.store.users.get(requester_id) is None:
                    raise RequesterNotFound(requester_id)
                if not self.policy.accepts_new_booking(kind, resource.status):
                    await self._reject_unavailable(kind, resource, session)

                start, end = self._resolve_window(kind, now, as_utc(explicit_start), as_utc(explicit_end))
                if kind == BookingKind.RESERVATION:
                    self._check_room_rules(resource, start, end, occupancy, now)

                conflict = await self.detector.find_overlap(
                    kind, resource_id, requester_id, BookingStatus.FINISHED, start, end, session=session
                )
                if conflict is not None:
                    raise AlreadyBooked()

                booking = Booking(
                    kind=kind,
                    requester_id=requester_id,
                    resource_id=resource_id,
                    status=BookingStatus.PENDING if kind == BookingKind.LOAN else BookingStatus.ACTIVE,
                    window_start=start,
                    window_end=end,
                    renewal_count=0,
                    occupancy=occupancy if kind == BookingKind.RESERVATION else None,
                    created_at=now,
                    updated_at=now,
                )
                await self.store.bookings.insert(booking, session=session)
                await self.store.directory.set_status(
                    resource_kind, resource_id, self.policy.occupied_status(kind), session=session
                )

        logger.info(f"Created {kind.value} {booking.id} on {resource_kind.value} {resource_id} for {requester_id}")
        return booking

    async def _reject_unavailable(self, kind: BookingKind, resource: Resource, session) -> None:
        # Held by an open booking: report the conflict rather than the status it caused
        if resource.status == self.policy.occupied_status(kind):
            if await self.store.bookings.count_open(kind, resource.id, session=session) > 0:
                raise AlreadyBooked()
        raise ResourceNotAvailable(resource.kind.value, resource.status.value)

    def _resolve_window(
        self,
        kind: BookingKind,
        now: datetime,
        explicit_start: Optional[datetime],
        explicit_end: Optional[datetime],
    ) -> Tuple[datetime, datetime]:
        start = now
        if kind == BookingKind.RESERVATION and explicit_start is not None:
            start = explicit_start
        if explicit_end is None:
            return start, self.policy.default_window_end(now)
        self.policy.validate_chronology(start, explicit_end)
        self.policy.validate_window(start, explicit_end)
        return start, explicit_end

    def _check_room_rules(
        self, room: Resource, start: datetime, end: datetime, occupancy: Optional[int], now: datetime
    ) -> None:
        self.policy.validate_occupancy(occupancy or 0, room.min_occupancy, room.max_occupancy)
        self.policy.validate_within_operating_hours(start, end)
        self.policy.validate_reservation_length(start, end)
        self.policy.validate_not_in_past(start, now)

    # --- Approve ---
    async def approve(self, booking_id: str) -> Booking:
        booking = await self.get(booking_id)

        async with self.store.resource_lock(booking.kind.resource_kind, booking.resource_id):
            booking = await self.get(booking_id)
            if booking.status in RENEWABLE_STATUSES:
                raise AlreadyApproved()
            if booking.status != BookingStatus.PENDING:
                raise CannotApprove()
            updated = await self.store.bookings.apply(booking_id, ApprovalCommand(updated_at=self.clock()))
            if updated is None:
                raise CannotApprove()

        logger.info(f"Approved {booking.kind.value} {booking_id}")
        return updated

    # --- Renew ---
    async def request_renewal(self, booking_id: str) -> Booking:
        """Extend a loan by the configured number of days.

        A book holds at most one open loan, so the extension cannot run into
        another loan and no overlap check is needed.
        """
        booking = await self.get(booking_id)
        if booking.kind == BookingKind.RESERVATION:
            raise RenewalNotAllowed()

        async with self.store.resource_lock(booking.kind.resource_kind, booking.resource_id):
            booking = await self.get(booking_id)
            if booking.completed_at is not None or booking.status == BookingStatus.FINISHED:
                raise AlreadyFinished()
            if booking.status not in RENEWABLE_STATUSES:
                raise NotApproved()
            attempted = self.policy.validate_renewal(booking.renewal_count)
            new_end = self.policy.renewal_end(booking.window_end)

            command = RenewalCommand(window_end=new_end, renewal_count=attempted, updated_at=self.clock())
            updated = await self.store.bookings.apply(booking_id, command)
            if updated is None:
                raise AlreadyFinished()

        logger.info(
            f"Renewed {booking.kind.value} {booking_id} ({attempted}/{self.policy.settings.max_renewals_per_booking}) "
            f"until {new_end.isoformat()}"
        )
        return updated

    # --- Complete ---
    async def complete(self, booking_id: str) -> Booking:
        booking = await self.get(booking_id)
        if booking.completed_at is not None:
            raise AlreadyFinished()
        resource_kind = booking.kind.resource_kind
        now = self.clock()

        async with self.store.resource_lock(resource_kind, booking.resource_id):
            async with self.store.transaction() as session:
                updated = await self.store.bookings.apply(
                    booking_id, CompletionCommand(completed_at=now, updated_at=now), session=session
                )
                if updated is None:
                    raise AlreadyFinished()

                resource = await self.store.directory.get(resource_kind, booking.resource_id, session=session)
                if resource.status == self.policy.occupied_status(booking.kind):
                    still_held = await self.store.bookings.count_open(
                        booking.kind, booking.resource_id, exclude_booking_id=booking_id, session=session
                    )
                    if still_held == 0:
                        await self.store.directory.set_status(
                            resource_kind, booking.resource_id, ResourceStatus.AVAILABLE, session=session
                        )

        logger.info(f"Finished {booking.kind.value} {booking_id}; {resource_kind.value} {booking.resource_id} released")
        return updated

    # --- Repair ---
    async def reconcile(self) -> ReconciliationReport:
        """Derive every resource's status from the existence of open bookings.

        Repairs the state left behind when a worker died between the booking
        write and the status write on a store without transactions.
        NOT_AVAILABLE resources are administrative and left untouched.
        """
        report = ReconciliationReport()
        for kind in BookingKind:
            resource_kind = kind.resource_kind
            occupied = self.policy.occupied_status(kind)
            managed = (ResourceStatus.AVAILABLE, occupied)
            for resource in await self.store.directory.list_all(resource_kind):
                if resource.status not in managed:
                    continue
                report.checked += 1
                async with self.store.resource_lock(resource_kind, resource.id):
                    current = await self.store.directory.get(resource_kind, resource.id)
                    if current.status not in managed:
                        continue
                    open_count = await self.store.bookings.count_open(kind, resource.id)
                    expected = occupied if open_count > 0 else ResourceStatus.AVAILABLE
                    if current.status != expected:
                        await self.store.directory.set_status(resource_kind, resource.id, expected)
                        report.repaired.append(
                            StatusRepair(
                                kind=resource_kind, resource_id=resource.id, previous=current.status, status=expected
                            )
                        )
                        logger.warning(
                            f"Reconciled {resource_kind.value} {resource.id}: {current.status.value} -> {expected.value}"
                        )
        logger.info(f"Reconciliation checked {report.checked} resources, repaired {len(report.repaired)}")
        return report
