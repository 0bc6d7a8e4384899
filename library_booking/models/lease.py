# library_booking/models/lease.py
from datetime import datetime

from beanie import Document
from pymongo import IndexModel, ASCENDING


class ResourceLease(Document):
    """Short-lived per-resource mutex. ``_id`` is ``"<kind>:<resource id>"``."""
    id: str
    holder: str
    expires_at: datetime

    class Settings:
        name = "resource_leases"
        indexes = [
            # Mongo drops leases left behind by crashed workers
            IndexModel([("expires_at", ASCENDING)], name="lease_expiry_ttl", expireAfterSeconds=0),
        ]
