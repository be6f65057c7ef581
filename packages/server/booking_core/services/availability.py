"""
Availability engine: capacity accounting and the admission decision.

Only PENDING and CONFIRMED reservations consume capacity. Windows are
half-open, so a booking ending at T never conflicts with one starting at T.

``check_availability`` is a read: it is only safe against concurrent writers
when called inside the write transaction that holds the resource lock (see
``lock_resource``).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.errors import BookingError, CapacityExceeded, InvalidRequest, NotFound
from booking_core.models.reservation import Reservation
from booking_core.models.resource import Resource

from booking_shared.schemas.common import CAPACITY_CONSUMING_STATUSES
from booking_shared.schemas.reservations import AvailabilityRead, as_utc

# Rejection reasons, in the order they are checked
REASON_RESOURCE_MISSING = "resource_missing"
REASON_RESOURCE_INACTIVE = "resource_inactive"
REASON_INVALID_QUANTITY = "invalid_quantity"
REASON_CAPACITY_NOT_CONFIGURED = "capacity_not_configured"
REASON_EXCEEDS_CAPACITY = "exceeds_capacity"
REASON_INVALID_WINDOW = "invalid_window"
REASON_INSUFFICIENT_CAPACITY = "insufficient_capacity"


@dataclass(frozen=True)
class Admission:
    admitted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    capacity: Optional[int] = None
    reserved: Optional[int] = None
    requested: Optional[int] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.capacity is None or self.reserved is None:
            return None
        return max(self.capacity - self.reserved, 0)

    def to_error(self) -> BookingError:
        if self.reason == REASON_RESOURCE_MISSING:
            return NotFound(self.message)
        if self.reason == REASON_INSUFFICIENT_CAPACITY:
            return CapacityExceeded(
                self.message,
                remaining=self.remaining,
                capacity=self.capacity,
                requested=self.requested,
            )
        return InvalidRequest(self.message, reason=self.reason)


def overlaps(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    """Half-open interval overlap: [s1, e1) and [s2, e2)."""
    return s1 < e2 and e1 > s2


def evaluate_admission(
    resource: Optional[Resource],
    start: datetime,
    end: datetime,
    quantity: int,
    reserved: int,
) -> Admission:
    """Pure admission decision over an already computed reserved quantity."""
    if resource is None:
        return Admission(False, REASON_RESOURCE_MISSING, "Resource not found")
    if not resource.is_active:
        return Admission(False, REASON_RESOURCE_INACTIVE, "Resource is not active")
    if quantity < 1:
        return Admission(False, REASON_INVALID_QUANTITY, "Quantity must be at least 1")
    if resource.capacity < 1:
        return Admission(
            False, REASON_CAPACITY_NOT_CONFIGURED, "Resource capacity is not configured"
        )
    if quantity > resource.capacity:
        return Admission(
            False,
            REASON_EXCEEDS_CAPACITY,
            f"Requested quantity {quantity} exceeds the resource capacity of {resource.capacity}",
            capacity=resource.capacity,
            requested=quantity,
        )
    if as_utc(start) >= as_utc(end):
        return Admission(False, REASON_INVALID_WINDOW, "End time must be after start time")

    available = resource.capacity - reserved
    if available < quantity:
        return Admission(
            False,
            REASON_INSUFFICIENT_CAPACITY,
            f"Only {max(available, 0)} of {resource.capacity} units are available for this time period",
            capacity=resource.capacity,
            reserved=reserved,
            requested=quantity,
        )
    return Admission(True, capacity=resource.capacity, reserved=reserved, requested=quantity)


async def reserved_quantity(
    session: AsyncSession,
    resource_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_reservation_id: Optional[uuid.UUID] = None,
) -> int:
    """Units held by PENDING/CONFIRMED reservations overlapping [start, end)."""
    stmt = select(func.coalesce(func.sum(Reservation.quantity), 0)).where(
        Reservation.resource_id == resource_id,
        Reservation.status.in_([s.value for s in CAPACITY_CONSUMING_STATUSES]),
        Reservation.start_time < as_utc(end),
        Reservation.end_time > as_utc(start),
    )
    if exclude_reservation_id is not None:
        stmt = stmt.where(Reservation.id != exclude_reservation_id)
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def lock_resource(session: AsyncSession, resource_id: uuid.UUID) -> Optional[Resource]:
    """Load the resource holding a row lock for the rest of the transaction."""
    result = await session.execute(
        select(Resource)
        .where(Resource.id == resource_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def check_availability(
    session: AsyncSession,
    resource: Optional[Resource],
    start: datetime,
    end: datetime,
    quantity: int,
    exclude_reservation_id: Optional[uuid.UUID] = None,
) -> Admission:
    # Cheap checks first so an invalid request never touches the reservations table
    precheck = evaluate_admission(resource, start, end, quantity, reserved=0)
    if not precheck.admitted:
        return precheck
    reserved = await reserved_quantity(
        session, resource.id, start, end, exclude_reservation_id=exclude_reservation_id
    )
    return evaluate_admission(resource, start, end, quantity, reserved)


async def assert_available(
    session: AsyncSession,
    resource: Optional[Resource],
    start: datetime,
    end: datetime,
    quantity: int,
    exclude_reservation_id: Optional[uuid.UUID] = None,
) -> Admission:
    """Like ``check_availability`` but raises the matching BookingError on rejection."""
    admission = await check_availability(
        session, resource, start, end, quantity, exclude_reservation_id=exclude_reservation_id
    )
    if not admission.admitted:
        raise admission.to_error()
    return admission


async def remaining_capacity(
    session: AsyncSession,
    resource: Resource,
    start: datetime,
    end: datetime,
) -> AvailabilityRead:
    """Capacity still free over the whole [start, end) window."""
    if as_utc(start) >= as_utc(end):
        raise InvalidRequest("End time must be after start time", reason=REASON_INVALID_WINDOW)
    reserved = await reserved_quantity(session, resource.id, start, end)
    return AvailabilityRead(
        resource_id=resource.id,
        start_time=start,
        end_time=end,
        capacity=resource.capacity,
        reserved=reserved,
        remaining=max(resource.capacity - reserved, 0),
    )
