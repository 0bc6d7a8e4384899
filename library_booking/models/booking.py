# library_booking/models/booking.py
from typing import ClassVar, FrozenSet, Optional
from datetime import datetime, timezone

from beanie import Document, PydanticObjectId
from bson import ObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import BookingKind, BookingStatus, OPEN_STATUSES, RENEWABLE_STATUSES, TERMINAL_STATUSES


def new_booking_id() -> str:
    return str(ObjectId())


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by some Mongo clients) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Booking(BaseModel):
    """A loan or reservation claiming a resource over [window_start, window_end]."""
    id: str = Field(default_factory=new_booking_id)
    kind: BookingKind
    requester_id: str
    resource_id: str
    status: BookingStatus
    window_start: datetime
    window_end: datetime
    completed_at: Optional[datetime] = None
    renewal_count: int = Field(default=0, ge=0)
    occupancy: Optional[int] = Field(None, gt=0)
    created_at: datetime
    updated_at: datetime

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def occupied_until(self) -> datetime:
        """Upper bound of the window this booking holds the resource for."""
        return self.completed_at or self.window_end

    # --- Request schemas ---
    class LoanCreate(BaseModel):
        book_id: str = Field(..., min_length=1)
        # Staff may lend on behalf of another user
        user_id: Optional[str] = None
        return_date: Optional[datetime] = None

    class ReservationCreate(BaseModel):
        room_id: str = Field(..., min_length=1)
        user_id: Optional[str] = None
        start_date: datetime
        finish_date: datetime
        people: int = Field(..., gt=0)

    # --- Response schemas ---
    class Response(BaseModel):
        id: str
        kind: BookingKind
        requester_id: str
        resource_id: str
        status: BookingStatus
        window_start: datetime
        window_end: datetime
        completed_at: Optional[datetime] = None
        renewal_count: int
        occupancy: Optional[int] = None
        created_at: datetime
        updated_at: datetime

        class Config:
            from_attributes = True
            use_enum_values = True

    class Page(BaseModel):
        data: list["Booking.Response"]
        total: int
        skip: int
        limit: int


Booking.Page.model_rebuild()


# --- Commands: the only fields each lifecycle step may change ---
class BookingCommand(BaseModel):
    # Statuses the booking must be in for the write to apply
    from_statuses: ClassVar[FrozenSet[BookingStatus]] = OPEN_STATUSES

    updated_at: datetime

    class Config:
        frozen = True
        extra = "forbid"

    def changes(self) -> dict:
        return self.model_dump()


class ApprovalCommand(BookingCommand):
    from_statuses: ClassVar[FrozenSet[BookingStatus]] = frozenset({BookingStatus.PENDING})

    status: BookingStatus = BookingStatus.ACTIVE


class RenewalCommand(BookingCommand):
    from_statuses: ClassVar[FrozenSet[BookingStatus]] = RENEWABLE_STATUSES

    status: BookingStatus = BookingStatus.RENEWED
    window_end: datetime
    renewal_count: int = Field(..., ge=1)


class CompletionCommand(BookingCommand):
    status: BookingStatus = BookingStatus.FINISHED
    completed_at: datetime


class BookingDocument(Document):
    """Persisted loan/reservation. ``is_open`` mirrors the status for indexing."""
    kind: BookingKind
    requester_id: PydanticObjectId
    resource_id: PydanticObjectId
    status: BookingStatus
    window_start: datetime
    window_end: datetime
    completed_at: Optional[datetime] = None
    renewal_count: int = Field(default=0, ge=0)
    occupancy: Optional[int] = None
    is_open: bool = True
    created_at: datetime
    updated_at: datetime

    class Settings:
        name = "bookings"
        indexes = [
            IndexModel(
                [("kind", ASCENDING), ("resource_id", ASCENDING), ("window_start", ASCENDING)],
                name="booking_resource_window_index",
            ),
            IndexModel([("requester_id", ASCENDING)], name="booking_requester_index"),
            IndexModel([("status", ASCENDING)], name="booking_status_index"),
            IndexModel([("created_at", DESCENDING)], name="booking_created_at_index"),
            # Books are single copy: at most one open loan per book
            IndexModel(
                [("resource_id", ASCENDING)],
                name="one_open_loan_per_book",
                unique=True,
                partialFilterExpression={"kind": BookingKind.LOAN.value, "is_open": True},
            ),
        ]

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingDocument":
        return cls(
            id=PydanticObjectId(booking.id),
            kind=booking.kind,
            requester_id=PydanticObjectId(booking.requester_id),
            resource_id=PydanticObjectId(booking.resource_id),
            status=booking.status,
            window_start=booking.window_start,
            window_end=booking.window_end,
            completed_at=booking.completed_at,
            renewal_count=booking.renewal_count,
            occupancy=booking.occupancy,
            is_open=booking.is_open,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )

    def to_booking(self) -> Booking:
        return Booking(
            id=str(self.id),
            kind=self.kind,
            requester_id=str(self.requester_id),
            resource_id=str(self.resource_id),
            status=self.status,
            window_start=as_utc(self.window_start),
            window_end=as_utc(self.window_end),
            completed_at=as_utc(self.completed_at),
            renewal_count=self.renewal_count,
            occupancy=self.occupancy,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )
