# library_booking/models/enum.py
from enum import Enum


class ResourceKind(str, Enum):
    BOOK = "book"
    ROOM = "room"


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    LENT = "lent"             # book on loan
    RESERVED = "reserved"     # room holding at least one open reservation
    NOT_AVAILABLE = "not_available"


class BookingKind(str, Enum):
    LOAN = "loan"
    RESERVATION = "reservation"

    @property
    def resource_kind(self) -> ResourceKind:
        return ResourceKind.BOOK if self == BookingKind.LOAN else ResourceKind.ROOM


class BookingStatus(str, Enum):
    PENDING = "pending"       # loan awaiting approval
    ACTIVE = "active"
    RENEWED = "renewed"
    FINISHED = "finished"     # terminal


TERMINAL_STATUSES = frozenset({BookingStatus.FINISHED})
OPEN_STATUSES = frozenset(BookingStatus) - TERMINAL_STATUSES
RENEWABLE_STATUSES = frozenset({BookingStatus.ACTIVE, BookingStatus.RENEWED})


class AuditAction(str, Enum):
    CREATE_LOAN = "CREATE_LOAN"
    APPROVE_LOAN = "APPROVE_LOAN"
    REQUEST_LOAN_RENEWAL = "REQUEST_LOAN_RENEWAL"
    FINISH_LOAN = "FINISH_LOAN"
    CREATE_RESERVATION = "CREATE_RESERVATION"
    FINISH_RESERVATION = "FINISH_RESERVATION"
    RECONCILE_STATUSES = "RECONCILE_STATUSES"
