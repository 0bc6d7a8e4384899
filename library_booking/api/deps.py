# library_booking/api/deps.py
from typing import Optional

from fastapi import Depends

from library_booking.core.config import get_policy_settings
from library_booking.core.lifecycle import BookingLifecycleEngine
from library_booking.core.policy import BookingPolicy
from library_booking.repositories.base import BookingStore
from library_booking.repositories.memory import MemoryBookingStore

_store: Optional[BookingStore] = None


def set_store(store: Optional[BookingStore]) -> None:
    """Install the store built at startup (or by a test)."""
    global _store
    _store = store


def get_store() -> BookingStore:
    global _store
    if _store is None:
        # No lifespan ran: fall back to a process-local store
        _store = MemoryBookingStore()
    return _store


def build_engine(store: BookingStore) -> BookingLifecycleEngine:
    return BookingLifecycleEngine(store, BookingPolicy(get_policy_settings()))


def get_engine(store: BookingStore = Depends(get_store)) -> BookingLifecycleEngine:
    return build_engine(store)
