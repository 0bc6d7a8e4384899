# library_booking/repositories/mongo.py
import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple, Type, Union

import motor.motor_asyncio
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from library_booking.core.errors import AlreadyBooked, ResourceBusy, ResourceNotFound
from library_booking.models.audit_log import AuditEntry, AuditLog
from library_booking.models.booking import Booking, BookingCommand, BookingDocument
from library_booking.models.enum import (
    AuditAction,
    BookingKind,
    BookingStatus,
    ResourceKind,
    ResourceStatus,
    TERMINAL_STATUSES,
)
from library_booking.models.lease import ResourceLease
from library_booking.models.resource import Book, Resource, Room
from library_booking.models.user import User, UserAccount
from library_booking.repositories.base import (
    AuditLogRepository,
    BookingRepository,
    BookingStore,
    ResourceDirectory,
    UserRepository,
)

logger = logging.getLogger(__name__)

LOCK_RETRY_INTERVAL = 0.05


def _bson_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


class MongoResourceDirectory(ResourceDirectory):

    @staticmethod
    def _model(kind: ResourceKind) -> Union[Type[Book], Type[Room]]:
        return Book if kind == ResourceKind.BOOK else Room

    async def get(self, kind: ResourceKind, resource_id: str, session: Any = None) -> Resource:
        oid = _object_id(resource_id)
        doc = await self._model(kind).find_one({"_id": oid}, session=session) if oid else None
        if doc is None:
            raise ResourceNotFound(kind.value, resource_id)
        return doc.to_resource()

    async def set_status(
        self, kind: ResourceKind, resource_id: str, status: ResourceStatus, session: Any = None
    ) -> None:
        oid = _object_id(resource_id)
        if oid is None:
            raise ResourceNotFound(kind.value, resource_id)
        result = await self._model(kind).get_motor_collection().update_one(
            {"_id": oid},
            {"$set": {"status": status.value, "updated_at": datetime.now(timezone.utc)}},
            session=session,
        )
        if result.matched_count == 0:
            raise ResourceNotFound(kind.value, resource_id)
        logger.debug(f"{kind.value} {resource_id} status set to {status.value}")

    async def list_all(self, kind: ResourceKind) -> List[Resource]:
        docs = await self._model(kind).find({}).to_list()
        return [doc.to_resource() for doc in docs]


class MongoBookingRepository(BookingRepository):

    @staticmethod
    def _collection():
        return BookingDocument.get_motor_collection()

    @staticmethod
    def _to_booking(raw: Optional[dict]) -> Optional[Booking]:
        if raw is None:
            return None
        return BookingDocument.model_validate(raw).to_booking()

    async def get(self, booking_id: str, session: Any = None) -> Optional[Booking]:
        oid = _object_id(booking_id)
        if oid is None:
            return None
        return self._to_booking(await self._collection().find_one({"_id": oid}, session=session))

    async def insert(self, booking: Booking, session: Any = None) -> Booking:
        doc = BookingDocument.from_booking(booking)
        try:
            await doc.insert(session=session)
        except DuplicateKeyError as e:
            logger.warning(f"Unique index rejected {booking.kind.value} on {booking.resource_id}: {e}")
            raise AlreadyBooked() from e
        return booking

    async def apply(self, booking_id: str, command: BookingCommand, session: Any = None) -> Optional[Booking]:
        oid = _object_id(booking_id)
        if oid is None:
            return None
        changes = {field: _bson_value(value) for field, value in command.changes().items()}
        if "status" in changes:
            changes["is_open"] = BookingStatus(changes["status"]) not in TERMINAL_STATUSES
        raw = await self._collection().find_one_and_update(
            {
                "_id": oid,
                "completed_at": None,
                "status": {"$in": [s.value for s in command.from_statuses]},
            },
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return self._to_booking(raw)

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
        oid = _object_id(resource_id)
        if oid is None:
            return None
        # Same closed-interval rule as conflicts.windows_overlap, bounded by completed_at when set
        query = {
            "kind": kind.value,
            "resource_id": oid,
            "status": {"$ne": exclude_status.value},
            "window_start": {"$lte": window_end},
            "$or": [
                {"completed_at": {"$gte": window_start}},
                {"completed_at": None, "window_end": {"$gte": window_start}},
            ],
        }
        if exclude_booking_id and ObjectId.is_valid(exclude_booking_id):
            query["_id"] = {"$ne": ObjectId(exclude_booking_id)}
        raw = await self._collection().find_one(query, sort=[("window_start", ASCENDING)], session=session)
        return self._to_booking(raw)

    async def count_open(
        self, kind: BookingKind, resource_id: str, exclude_booking_id: Optional[str] = None, session: Any = None
    ) -> int:
        oid = _object_id(resource_id)
        if oid is None:
            return 0
        query = {"kind": kind.value, "resource_id": oid, "is_open": True}
        if exclude_booking_id and ObjectId.is_valid(exclude_booking_id):
            query["_id"] = {"$ne": ObjectId(exclude_booking_id)}
        return await self._collection().count_documents(query, session=session)

    async def list(
        self,
        kind: BookingKind,
        status: Optional[List[BookingStatus]] = None,
        requester_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 25,
    ) -> Tuple[List[Booking], int]:
        query_filters: dict = {"kind": kind.value}
        if status:
            query_filters["status"] = {"$in": [s.value for s in status]}
        for field, value in (("requester_id", requester_id), ("resource_id", resource_id)):
            if value is not None:
                oid = _object_id(value)
                if oid is None:
                    return [], 0
                query_filters[field] = oid
        docs = await BookingDocument.find(
            query_filters, skip=skip, limit=limit, sort=[("created_at", DESCENDING)]
        ).to_list()
        total = await BookingDocument.find(query_filters).count()
        return [doc.to_booking() for doc in docs], total


class MongoUserRepository(UserRepository):

    async def get(self, user_id: str) -> Optional[UserAccount]:
        oid = _object_id(user_id)
        user = await User.find_one({"_id": oid}) if oid else None
        return user.to_account() if user else None

    async def get_by_username(self, username: str) -> Optional[UserAccount]:
        user = await User.find_one({"username": username})
        return user.to_account() if user else None


class MongoAuditLogRepository(AuditLogRepository):

    async def record(self, user_id: str, action: AuditAction, object_id: str) -> AuditEntry:
        entry = AuditEntry(user_id=user_id, action=action, object_id=object_id)
        await AuditLog(**entry.model_dump()).insert()
        return entry


class MongoBookingStore(BookingStore):
    def __init__(
        self,
        client: motor.motor_asyncio.AsyncIOMotorClient,
        use_transactions: bool = False,
        lock_timeout: float = 5,
        lock_ttl: float = 30,
    ):
        self.client = client
        self.use_transactions = use_transactions
        self.lock_timeout = lock_timeout
        self.lock_ttl = lock_ttl
        self.directory = MongoResourceDirectory()
        self.bookings = MongoBookingRepository()
        self.users = MongoUserRepository()
        self.audit_logs = MongoAuditLogRepository()

    @asynccontextmanager
    async def transaction(self):
        if not self.use_transactions:
            # Standalone server: writes commit one by one, reconcile() repairs partial state
            yield None
            return
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

    @asynccontextmanager
    async def resource_lock(self, kind: ResourceKind, resource_id: str):
        key = f"{kind.value}:{resource_id}"
        holder = uuid.uuid4().hex
        await self._acquire_lease(key, holder)
        try:
            yield
        finally:
            await ResourceLease.get_motor_collection().delete_one({"_id": key, "holder": holder})

    async def _acquire_lease(self, key: str, holder: str) -> None:
        collection = ResourceLease.get_motor_collection()
        deadline = time.monotonic() + self.lock_timeout
        while True:
            now = datetime.now(timezone.utc)
            expires_at = now + timedelta(seconds=self.lock_ttl)
            try:
                await collection.insert_one({"_id": key, "holder": holder, "expires_at": expires_at})
                return
            except DuplicateKeyError:
                taken = await collection.find_one_and_update(
                    {"_id": key, "expires_at": {"$lt": now}},
                    {"$set": {"holder": holder, "expires_at": expires_at}},
                )
                if taken is not None:
                    logger.warning(f"Took over expired lease on {key} held by {taken.get('holder')}")
                    return
            if time.monotonic() >= deadline:
                logger.warning(f"Timed out waiting for lease on {key}")
                raise ResourceBusy()
            await asyncio.sleep(LOCK_RETRY_INTERVAL)

    async def close(self) -> None:
        self.client.close()
