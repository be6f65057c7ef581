# SQLModel definitions: imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .membership import OrganizationAdmin, OrganizationMembership  # noqa: F401
from .resource import ResourceType, Resource  # noqa: F401
from .calendar import ReservationCalendar, ReservationCalendarRole  # noqa: F401
from .permission import GranularResourcePermission, GranularCalendarPermission  # noqa: F401
from .reservation import Reservation  # noqa: F401
from .idempotency import IdempotencyRecord  # noqa: F401
