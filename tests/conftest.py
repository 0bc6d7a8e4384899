import os

# Configuration is read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LOG_FILE_PATH"] = ""
os.environ["LIBRARY_TIMEZONE"] = "UTC"

from datetime import datetime, timezone

import pytest

from library_booking.core.config import BookingPolicySettings
from library_booking.core.lifecycle import BookingLifecycleEngine
from library_booking.core.policy import BookingPolicy
from library_booking.models.enum import ResourceKind, ResourceStatus
from library_booking.models.resource import Resource
from library_booking.models.user import UserAccount, UserRole
from library_booking.repositories.memory import MemoryBookingStore

# Monday
NOW = datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def settings():
    return BookingPolicySettings()


@pytest.fixture
def policy(settings):
    return BookingPolicy(settings)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    store = MemoryBookingStore()
    store.users.add(UserAccount(id="member-1", username="alice", hashed_password="x"))
    store.users.add(UserAccount(id="member-2", username="bob", hashed_password="x"))
    store.users.add(UserAccount(id="librarian-1", username="lib", hashed_password="x", role=UserRole.LIBRARIAN))
    store.users.add(UserAccount(id="admin-1", username="root", hashed_password="x", role=UserRole.ADMIN))
    store.directory.add(Resource(id="book-1", kind=ResourceKind.BOOK, name="Dune"))
    store.directory.add(Resource(id="book-2", kind=ResourceKind.BOOK, name="Emma"))
    store.directory.add(
        Resource(
            id="book-3", kind=ResourceKind.BOOK, name="Damaged copy", status=ResourceStatus.NOT_AVAILABLE
        )
    )
    store.directory.add(
        Resource(id="room-1", kind=ResourceKind.ROOM, name="Study room", min_occupancy=2, max_occupancy=6)
    )
    return store


@pytest.fixture
def engine(store, policy, clock):
    return BookingLifecycleEngine(store, policy, clock=clock)
