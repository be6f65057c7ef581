"""Granular per-user grants, consulted only when the organization opts in."""

import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin


class GranularResourcePermission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "granular_resource_permissions"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id", "user_id", "resource_type_id",
            name="uq_granular_resource_permission",
        ),
    )

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", nullable=False, index=True, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    resource_type_id: uuid.UUID = Field(
        foreign_key="resource_types.id", nullable=False, ondelete="CASCADE"
    )
    can_view: bool = Field(default=False, nullable=False)
    can_edit: bool = Field(default=False, nullable=False)  # implies can_view


class GranularCalendarPermission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "granular_calendar_permissions"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id", "user_id", "reservation_calendar_id",
            name="uq_granular_calendar_permission",
        ),
    )

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", nullable=False, index=True, ondelete="CASCADE"
    )
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE")
    reservation_calendar_id: uuid.UUID = Field(
        foreign_key="reservation_calendars.id", nullable=False, ondelete="CASCADE"
    )
    can_view: bool = Field(default=False, nullable=False)
    can_edit: bool = Field(default=False, nullable=False)  # implies can_view
