"""Reservation calendars and their editor/reviewer role assignments."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class ReservationCalendar(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "reservation_calendars"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", nullable=False, index=True, ondelete="CASCADE"
    )
    # Underlying general-purpose calendar, owned by the calendar service
    owning_calendar_id: Optional[uuid.UUID] = Field(default=None, index=True)
    name: str = Field(nullable=False)


class ReservationCalendarRole(SQLModel, table=True):
    __tablename__ = "reservation_calendar_roles"

    reservation_calendar_id: uuid.UUID = Field(
        foreign_key="reservation_calendars.id", primary_key=True, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    role: str = Field(nullable=False)  # editor | reviewer
    # Set for rows materialized from an organization admin grant.
    # Only removing that grant may delete them.
    is_auto_assigned_from_org_admin: bool = Field(default=False, nullable=False)
    assigned_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    assigned_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
