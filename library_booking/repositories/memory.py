# library_booking/repositories/memory.py
"""Process-local store for development and tests (``STORAGE_BACKEND=memory``).

Single-process only: the resource lock is an ``asyncio.Lock`` per resource.
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from library_booking.core.conflicts import booking_overlaps
from library_booking.core.errors import AlreadyBooked, ResourceNotFound
from library_booking.models.audit_log import AuditEntry
from library_booking.models.booking import Booking, BookingCommand
from library_booking.models.enum import AuditAction, BookingKind, BookingStatus, ResourceKind, ResourceStatus
from library_booking.models.resource import Resource
from library_booking.models.user import UserAccount
from library_booking.repositories.base import (
    AuditLogRepository,
    BookingRepository,
    BookingStore,
    ResourceDirectory,
    UserRepository,
)


_MISSING = object()


class MemoryTransaction:
    """Undo journal for writes made with this session."""

    def __init__(self) -> None:
        self._undo: List[Tuple[dict, Any, Any]] = []

    def remember(self, mapping: dict, key: Any) -> None:
        self._undo.append((mapping, key, mapping.get(key, _MISSING)))

    def rollback(self) -> None:
        for mapping, key, previous in reversed(self._undo):
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous
        self._undo.clear()


def _remember(session: Any, mapping: dict, key: Any) -> None:
    if isinstance(session, MemoryTransaction):
        session.remember(mapping, key)


class MemoryResourceDirectory(ResourceDirectory):
    def __init__(self) -> None:
        self._resources: Dict[Tuple[ResourceKind, str], Resource] = {}

    def add(self, resource: Resource) -> Resource:
        self._resources[(resource.kind, resource.id)] = resource
        return resource

    async def get(self, kind: ResourceKind, resource_id: str, session: Any = None) -> Resource:
        resource = self._resources.get((kind, resource_id))
        if resource is None:
            raise ResourceNotFound(kind.value, resource_id)
        return resource.model_copy()

    async def set_status(
        self, kind: ResourceKind, resource_id: str, status: ResourceStatus, session: Any = None
    ) -> None:
        resource = self._resources.get((kind, resource_id))
        if resource is None:
            raise ResourceNotFound(kind.value, resource_id)
        _remember(session, self._resources, (kind, resource_id))
        self._resources[(kind, resource_id)] = resource.model_copy(update={"status": status})

    async def list_all(self, kind: ResourceKind) -> List[Resource]:
        return [r.model_copy() for (k, _), r in self._resources.items() if k == kind]


class MemoryBookingRepository(BookingRepository):
    def __init__(self) -> None:
        self._bookings: Dict[str, Booking] = {}

    async def get(self, booking_id: str, session: Any = None) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        return booking.model_copy() if booking else None

    async def insert(self, booking: Booking, session: Any = None) -> Booking:
        if booking.kind == BookingKind.LOAN and any(
            b.kind == BookingKind.LOAN and b.resource_id == booking.resource_id and b.is_open
            for b in self._bookings.values()
        ):
            raise AlreadyBooked()
        _remember(session, self._bookings, booking.id)
        self._bookings[booking.id] = booking.model_copy()
        return booking

    async def apply(self, booking_id: str, command: BookingCommand, session: Any = None) -> Optional[Booking]:
        booking = self._bookings.get(booking_id)
        if booking is None or booking.completed_at is not None or booking.status not in command.from_statuses:
            return None
        _remember(session, self._bookings, booking_id)
        updated = booking.model_copy(update=command.changes())
        self._bookings[booking_id] = updated
        return updated.model_copy()

    async def find_overlapping(
        self,
        kind: BookingKind,
        resource_id: str,
        exclude_status: BookingStatus,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[str] = None,
        session: Any = None,
    ) -> Optional[Booking]:
        # Yield like a database round trip would, so unlocked callers can interleave
        await asyncio.sleep(0)
        for booking in sorted(self._bookings.values(), key=lambda b: b.window_start):
            if booking.kind != kind or booking.resource_id != resource_id or booking.id == exclude_booking_id:
                continue
            if booking_overlaps(booking, exclude_status, window_start, window_end):
                return booking.model_copy()
        return None

    async def count_open(
        self, kind: BookingKind, resource_id: str, exclude_booking_id: Optional[str] = None, session: Any = None
    ) -> int:
        return sum(
            1
            for b in self._bookings.values()
            if b.kind == kind and b.resource_id == resource_id and b.is_open and b.id != exclude_booking_id
        )

    async def list(
        self,
        kind: BookingKind,
        status: Optional[List[BookingStatus]] = None,
        requester_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 25,
    ) -> Tuple[List[Booking], int]:
        def matches(b: Booking) -> bool:
            return (
                b.kind == kind
                and (not status or b.status in status)
                and (requester_id is None or b.requester_id == requester_id)
                and (resource_id is None or b.resource_id == resource_id)
            )

        found = sorted((b for b in self._bookings.values() if matches(b)), key=lambda b: b.created_at, reverse=True)
        return [b.model_copy() for b in found[skip:skip + limit]], len(found)


class MemoryUserRepository(UserRepository):
    def __init__(self) -> None:
        self._users: Dict[str, UserAccount] = {}

    def add(self, user: UserAccount) -> UserAccount:
        self._users[user.id] = user
        return user

    async def get(self, user_id: str) -> Optional[UserAccount]:
        return self._users.get(user_id)

    async def get_by_username(self, username: str) -> Optional[UserAccount]:
        return next((u for u in self._users.values() if u.username == username), None)


class MemoryAuditLogRepository(AuditLogRepository):
    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []

    async def record(self, user_id: str, action: AuditAction, object_id: str) -> AuditEntry:
        entry = AuditEntry(user_id=user_id, action=action, object_id=object_id)
        self.entries.append(entry)
        return entry


class MemoryBookingStore(BookingStore):
    def __init__(self) -> None:
        self.directory = MemoryResourceDirectory()
        self.bookings = MemoryBookingRepository()
        self.users = MemoryUserRepository()
        self.audit_logs = MemoryAuditLogRepository()
        self._locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per key; the lock is dropped when it reaches zero
        self._lock_users: Dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def resource_lock(self, kind: ResourceKind, resource_id: str):
        key = f"{kind.value}:{resource_id}"
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    @asynccontextmanager
    async def transaction(self):
        session = MemoryTransaction()
        try:
            yield session
        except BaseException:
            session.rollback()
            raise
