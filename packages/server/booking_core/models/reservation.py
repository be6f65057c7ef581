"""Reservation model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Reservation(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "reservations"
    __table_args__ = (
        sa.CheckConstraint("quantity >= 1", name="ck_reservations_quantity_positive"),
        sa.CheckConstraint("start_time < end_time", name="ck_reservations_window"),
        sa.Index("ix_reservations_resource_window", "resource_id", "start_time", "end_time"),
    )

    resource_id: uuid.UUID = Field(
        foreign_key="resources.id", nullable=False, index=True, ondelete="CASCADE"
    )
    start_time: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    end_time: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    quantity: int = Field(default=1, nullable=False)
    status: str = Field(default="pending", nullable=False, index=True)
    # Null for public (token-based) bookings
    created_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
