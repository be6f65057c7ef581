from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel


class AccessLevel(IntEnum):
    """Resolved access on a target. Ordered: a higher value implies every lower one."""

    NONE = 0
    VIEW = 1
    EDIT = 2
    ADMIN = 3

    @property
    def label(self) -> str:
        return self.name.lower()


class TargetType(str, Enum):
    ORGANIZATION = "organization"
    RESOURCE_TYPE = "resource_type"
    RESOURCE = "resource"
    CALENDAR = "calendar"


class MembershipRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class CalendarRoleType(str, Enum):
    EDITOR = "editor"  # create, edit, delete reservations
    REVIEWER = "reviewer"  # view, approve/reject


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    WAITLIST = "waitlist"


# Statuses that consume capacity. WAITLIST never counts.
CAPACITY_CONSUMING_STATUSES: frozenset["ReservationStatus"] = frozenset(
    {ReservationStatus.PENDING, ReservationStatus.CONFIRMED}
)

# Valid reservation status transitions
RESERVATION_TRANSITIONS: dict[ReservationStatus, list[ReservationStatus]] = {
    ReservationStatus.PENDING: [
        ReservationStatus.CONFIRMED,
        ReservationStatus.WAITLIST,
        ReservationStatus.CANCELLED,
    ],
    ReservationStatus.WAITLIST: [
        ReservationStatus.PENDING,
        ReservationStatus.CONFIRMED,
        ReservationStatus.CANCELLED,
    ],
    ReservationStatus.CONFIRMED: [
        ReservationStatus.PENDING,
        ReservationStatus.COMPLETED,
        ReservationStatus.CANCELLED,
    ],
    ReservationStatus.COMPLETED: [],
    ReservationStatus.CANCELLED: [],
}


class IdempotencyStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
