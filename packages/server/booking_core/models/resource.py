"""Resource types and bookable resources."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class ResourceType(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "resource_types"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", nullable=False, index=True, ondelete="CASCADE"
    )
    name: str = Field(nullable=False)
    description: Optional[str] = None


class Resource(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "resources"
    __table_args__ = (
        sa.CheckConstraint("capacity >= 1", name="ck_resources_capacity_positive"),
    )

    resource_type_id: uuid.UUID = Field(
        foreign_key="resource_types.id", nullable=False, index=True, ondelete="CASCADE"
    )
    name: str = Field(nullable=False)
    description: Optional[str] = None
    capacity: int = Field(default=1, nullable=False)
    is_active: bool = Field(default=True, nullable=False)
    public_booking_token: Optional[str] = Field(default=None, unique=True, index=True)
    managed_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
