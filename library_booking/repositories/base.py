# library_booking/repositories/base.py
"""Storage ports used by the booking core.

Every write accepts an optional ``session`` so a store can group the booking
write and the resource status write into one transaction.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncContextManager, List, Optional, Tuple

from library_booking.models.audit_log import AuditEntry
from library_booking.models.booking import Booking, BookingCommand
from library_booking.models.enum import AuditAction, BookingKind, BookingStatus, ResourceKind, ResourceStatus
from library_booking.models.resource import Resource
from library_booking.models.user import UserAccount


class ResourceDirectory(ABC):
    """Authoritative holder of each resource's availability status."""

    @abstractmethod
    async def get(self, kind: ResourceKind, resource_id: str, session: Any = None) -> Resource:
        """Return the resource or raise ``ResourceNotFound``."""

    @abstractmethod
    async def set_status(
        self, kind: ResourceKind, resource_id: str, status: ResourceStatus, session: Any = None
    ) -> None:
        ...

    @abstractmethod
    async def list_all(self, kind: ResourceKind) -> List[Resource]:
        ...


class BookingRepository(ABC):

    @abstractmethod
    async def get(self, booking_id: str, session: Any = None) -> Optional[Booking]:
        ...

    @abstractmethod
    async def insert(self, booking: Booking, session: Any = None) -> Booking:
        """Persist a new booking. Raises ``AlreadyBooked`` if the store's own
        uniqueness guard rejects it."""

    @abstractmethod
    async def apply(self, booking_id: str, command: BookingCommand, session: Any = None) -> Optional[Booking]:
        """Apply a command to a booking that is not yet completed and whose
        status is one of ``command.from_statuses``.

        Returns the updated booking, or ``None`` when no booking with that id
        matches both conditions.
        """

    @abstractmethod
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
        ...

    @abstractmethod
    async def count_open(
        self, kind: BookingKind, resource_id: str, exclude_booking_id: Optional[str] = None, session: Any = None
    ) -> int:
        ...

    @abstractmethod
    async def list(
        self,
        kind: BookingKind,
        status: Optional[List[BookingStatus]] = None,
        requester_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 25,
    ) -> Tuple[List[Booking], int]:
        ...


class UserRepository(ABC):

    @abstractmethod
    async def get(self, user_id: str) -> Optional[UserAccount]:
        ...

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[UserAccount]:
        ...


class AuditLogRepository(ABC):

    @abstractmethod
    async def record(self, user_id: str, action: AuditAction, object_id: str) -> AuditEntry:
        ...


class BookingStore(ABC):
    """Unit of work over the booking collaborators.

    ``resource_lock`` serialises create/renew/complete for one resource across
    workers. ``transaction`` yields the session to pass to each write; when the
    block raises, the writes made inside it are undone.
    """
    directory: ResourceDirectory
    bookings: BookingRepository
    users: UserRepository
    audit_logs: AuditLogRepository

    @abstractmethod
    def resource_lock(self, kind: ResourceKind, resource_id: str) -> AsyncContextManager[None]:
        ...

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Any]:
        ...

    async def close(self) -> None:
        return None
