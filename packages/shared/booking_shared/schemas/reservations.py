"""Reservation-related Pydantic schemas shared between the server and its clients.

Covers: reservation create/update requests, the reservation read model,
availability reads, public booking requests and confirmations.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from .common import ReservationStatus


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _TimeWindowMixin(BaseModel):
    @field_validator("start_time", "end_time", mode="after", check_fields=False)
    @classmethod
    def _normalize_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ReservationCreate(_TimeWindowMixin):
    resource_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    quantity: int = Field(default=1, description="Units of capacity to reserve")
    status: ReservationStatus = ReservationStatus.PENDING
    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("status")
    @classmethod
    def _initial_status(cls, value: ReservationStatus) -> ReservationStatus:
        if value in (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED):
            raise ValueError(f"Reservations cannot be created as '{value.value}'")
        return value


class ReservationUpdate(_TimeWindowMixin):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    quantity: Optional[int] = None
    status: Optional[ReservationStatus] = None
    customer_name: Optional[str] = Field(default=None, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _not_empty(self) -> "ReservationUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class PublicBookingCreate(_TimeWindowMixin):
    start_time: datetime
    end_time: datetime
    quantity: int = 1
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ReservationRead(_TimeWindowMixin):
    id: uuid.UUID
    resource_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    quantity: int
    status: ReservationStatus
    created_by_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class AvailabilityRead(_TimeWindowMixin):
    resource_id: uuid.UUID
    start_time: datetime
    end_time: datetime
    capacity: int
    reserved: int
    remaining: int


class PublicResourceRead(BaseModel):
    """Public-safe view of a bookable resource."""
    name: str
    description: Optional[str] = None
    capacity: int
    resource_type_name: str


class PublicBookingConfirmation(_TimeWindowMixin):
    reservation_id: uuid.UUID
    resource_name: str
    start_time: datetime
    end_time: datetime
    quantity: int
    status: ReservationStatus
    confirmation_message: str = "Your booking has been confirmed."
