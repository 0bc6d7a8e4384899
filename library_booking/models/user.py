# library_booking/models/user.py
from typing import Optional
from enum import Enum
from datetime import datetime, timezone

from beanie import Document
from pydantic import BaseModel, Field, EmailStr
from pymongo import IndexModel, ASCENDING


class UserRole(str, Enum):
    ADMIN = "admin"
    LIBRARIAN = "librarian"
    MEMBER = "member"


STAFF_ROLES = (UserRole.ADMIN, UserRole.LIBRARIAN)


class UserAccount(BaseModel):
    """Requester identity as the booking core sees it."""
    id: str
    username: str
    email: Optional[EmailStr] = None
    hashed_password: str
    role: UserRole = UserRole.MEMBER
    disabled: bool = False

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    class Response(BaseModel):
        id: str
        username: str
        role: UserRole

        class Config:
            from_attributes = True
            use_enum_values = True


class User(Document):
    username: str
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    hashed_password: str
    disabled: bool = Field(default=False)
    role: UserRole = Field(default=UserRole.MEMBER)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "users"
        indexes = [
            IndexModel([("username", ASCENDING)], name="username_unique_index", unique=True),
            # Stored as null when unset, which a sparse index would still count
            IndexModel(
                [("email", ASCENDING)],
                name="email_unique_index",
                unique=True,
                partialFilterExpression={"email": {"$type": "string"}},
            ),
        ]

    def to_account(self) -> UserAccount:
        return UserAccount(
            id=str(self.id),
            username=self.username,
            email=self.email,
            hashed_password=self.hashed_password,
            role=self.role,
            disabled=self.disabled,
        )
