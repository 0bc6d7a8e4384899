# library_booking/db/database.py
import logging

import motor.motor_asyncio
from beanie import init_beanie

from library_booking.core.config import (
    DATABASE_NAME,
    LOCK_TIMEOUT_SECONDS,
    LOCK_TTL_SECONDS,
    MONGODB_TRANSACTIONS,
    MONGODB_URL,
    STORAGE_BACKEND,
)
from library_booking.models.audit_log import AuditLog
from library_booking.models.booking import BookingDocument
from library_booking.models.lease import ResourceLease
from library_booking.models.resource import Book, Room
from library_booking.models.user import User
from library_booking.repositories.base import BookingStore
from library_booking.repositories.memory import MemoryBookingStore
from library_booking.repositories.mongo import MongoBookingStore

logger = logging.getLogger(__name__)


async def init_db() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Connect to MongoDB and register the Beanie documents (creates indexes)."""
    logger.info("Connecting to MongoDB...")
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URL, tz_aware=True)

    database = client[DATABASE_NAME]
    logger.info(f"Using database: {DATABASE_NAME}")

    await init_beanie(
        database=database,
        document_models=[
            User,
            Book,
            Room,
            BookingDocument,
            AuditLog,
            ResourceLease,
        ],
    )
    logger.info("Beanie initialization complete for all models.")
    return client


async def build_store() -> BookingStore:
    if STORAGE_BACKEND == "memory":
        logger.warning("Using the in-memory store: data is lost on restart and locks are per process.")
        return MemoryBookingStore()
    client = await init_db()
    return MongoBookingStore(
        client,
        use_transactions=MONGODB_TRANSACTIONS,
        lock_timeout=LOCK_TIMEOUT_SECONDS,
        lock_ttl=LOCK_TTL_SECONDS,
    )
