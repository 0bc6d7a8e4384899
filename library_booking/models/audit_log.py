# library_booking/models/audit_log.py
from datetime import datetime, timezone

from beanie import Document
from pydantic import BaseModel, Field
from pymongo import IndexModel, ASCENDING, DESCENDING

from .enum import AuditAction


class AuditEntry(BaseModel):
    user_id: str
    action: AuditAction
    object_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditLog(Document):
    user_id: str
    action: AuditAction
    object_id: str
    created_at: datetime

    class Settings:
        name = "audit_logs"
        indexes = [
            IndexModel([("user_id", ASCENDING)], name="audit_user_index"),
            IndexModel([("created_at", DESCENDING)], name="audit_created_at_index"),
        ]
