# library_booking/models/resource.py
from typing import Optional
from datetime import datetime, timezone

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING

from .enum import ResourceKind, ResourceStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Resource(BaseModel):
    """A bookable book copy or room, as seen by the booking core."""
    id: str
    kind: ResourceKind
    name: str
    status: ResourceStatus = ResourceStatus.AVAILABLE
    # Rooms only; policy defaults apply when unset
    min_occupancy: Optional[int] = Field(None, ge=0)
    max_occupancy: Optional[int] = Field(None, gt=0)

    class Response(BaseModel):
        id: str
        kind: ResourceKind
        name: str
        status: ResourceStatus


class Book(Document):
    """Book copy document. Catalogue CRUD lives outside the booking core."""
    title: str = Field(..., max_length=300)
    isbn: Optional[str] = None
    status: ResourceStatus = ResourceStatus.AVAILABLE
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "books"
        indexes = [
            IndexModel([("title", ASCENDING)], name="book_title_index"),
            IndexModel([("isbn", ASCENDING)], name="book_isbn_index", sparse=True),
            IndexModel([("status", ASCENDING)], name="book_status_index"),
        ]

    def to_resource(self) -> Resource:
        return Resource(id=str(self.id), kind=ResourceKind.BOOK, name=self.title, status=self.status)


class Room(Document):
    """Room document with its occupancy bounds."""
    name: str = Field(..., max_length=100)
    min_people: Optional[int] = Field(None, ge=0)
    max_people: Optional[int] = Field(None, gt=0)
    location: Optional[str] = None
    status: ResourceStatus = ResourceStatus.AVAILABLE
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "rooms"
        indexes = [
            IndexModel([("name", ASCENDING)], name="room_name_index"),
            IndexModel([("status", ASCENDING)], name="room_status_index"),
        ]

    def to_resource(self) -> Resource:
        return Resource(
            id=str(self.id),
            kind=ResourceKind.ROOM,
            name=self.name,
            status=self.status,
            min_occupancy=self.min_people,
            max_occupancy=self.max_people,
        )
