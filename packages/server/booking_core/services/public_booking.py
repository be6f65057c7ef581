"""
Public booking surface: unauthenticated bookings keyed by a resource token.

Public requests act as PUBLIC_ACTOR_ID, which holds no grants; access comes
only from the token of an active resource. Bookings are always CONFIRMED and
pass the same admission check as authenticated ones.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.database import SessionFactory, run_in_transaction
from booking_core.core.errors import NotFound
from booking_core.core.notifications import RESERVATION_CREATED
from booking_core.models.resource import Resource, ResourceType
from booking_core.services.availability import remaining_capacity
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.idempotency import IdempotencyDescriptor, IdempotencyGuard
from booking_core.services.permissions import PermissionResolver, Target
from booking_core.services.reservations import (
    PUBLIC_ACTOR_ID,
    BookingOutcome,
    admit_reservation,
    build_event,
)

from booking_shared.schemas.common import AccessLevel, ReservationStatus
from booking_shared.schemas.reservations import (
    AvailabilityRead,
    PublicBookingConfirmation,
    PublicBookingCreate,
    PublicResourceRead,
    ReservationRead,
)

log = structlog.get_logger()

SCOPE_PUBLIC_CREATE = "public_booking.create"


def generate_booking_token() -> str:
    return secrets.token_urlsafe(24)


async def get_bookable_resource(session: AsyncSession, token: str) -> Resource:
    """Active resource carrying ``token``. Unknown and disabled tokens look the same."""
    if not token:
        raise NotFound("Booking link not found")
    result = await session.execute(
        select(Resource).where(
            Resource.public_booking_token == token,
            Resource.is_active.is_(True),
        )
    )
    resource = result.scalar_one_or_none()
    if resource is None:
        raise NotFound("Booking link not found")
    return resource


async def get_public_resource(session: AsyncSession, token: str) -> PublicResourceRead:
    resource = await get_bookable_resource(session, token)
    resource_type = await session.get(ResourceType, resource.resource_type_id)
    return PublicResourceRead(
        name=resource.name,
        description=resource.description,
        capacity=resource.capacity,
        resource_type_name=resource_type.name if resource_type else "",
    )


async def public_availability(
    session: AsyncSession, token: str, start: datetime, end: datetime
) -> AvailabilityRead:
    resource = await get_bookable_resource(session, token)
    return await remaining_capacity(session, resource, start, end)


async def create_public_booking(
    session_factory: SessionFactory,
    token: str,
    request: PublicBookingCreate,
    idempotency_key: Optional[str] = None,
    *,
    guard: Optional[IdempotencyGuard] = None,
) -> tuple[PublicBookingConfirmation, BookingOutcome]:
    guard = guard or IdempotencyGuard(session_factory)

    async def _lookup(session: AsyncSession) -> tuple[uuid.UUID, str, Optional[uuid.UUID]]:
        resource = await get_bookable_resource(session, token)
        return resource.id, resource.name, resource.managed_by_id

    resource_id, resource_name, managed_by_id = await run_in_transaction(session_factory, _lookup)

    async def _insert(session: AsyncSession) -> ReservationRead:
        # The token is checked again under the lock in case it was rotated meanwhile
        await get_bookable_resource(session, token)
        return await admit_reservation(
            session,
            resource_id,
            start=request.start_time,
            end=request.end_time,
            quantity=request.quantity,
            status=ReservationStatus.CONFIRMED,
            created_by_id=None,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            notes=request.notes,
        )

    async def _operation() -> ReservationRead:
        return await run_in_transaction(session_factory, _insert)

    guarded = await guard.execute(
        IdempotencyDescriptor(
            key=idempotency_key,
            # Every public requester shares one identity; keys are kept per resource
            scope=f"{SCOPE_PUBLIC_CREATE}:{resource_id}",
            user_id=PUBLIC_ACTOR_ID,
            payload=request.model_dump(mode="json"),
        ),
        _operation,
        ReservationRead,
    )

    reservation = guarded.value
    confirmation = PublicBookingConfirmation(
        reservation_id=reservation.id,
        resource_name=resource_name,
        start_time=reservation.start_time,
        end_time=reservation.end_time,
        quantity=reservation.quantity,
        status=reservation.status,
    )
    if guarded.replayed:
        return confirmation, BookingOutcome(reservation, replayed=True)

    log.info(
        "public_booking.created",
        reservation_id=str(reservation.id),
        resource_id=str(resource_id),
        quantity=reservation.quantity,
    )
    outcome = BookingOutcome(
        reservation,
        events=[
            build_event(RESERVATION_CREATED, PUBLIC_ACTOR_ID, reservation, managed_by_id, public=True)
        ],
    )
    return confirmation, outcome


async def regenerate_public_token(
    session: AsyncSession, actor_id: uuid.UUID, resource_id: uuid.UUID
) -> str:
    """Issue a new booking token for a resource, invalidating the old link."""
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.resource(resource_id), AccessLevel.EDIT)

    resource = await session.get(Resource, resource_id)
    resource.public_booking_token = generate_booking_token()
    session.add(resource)
    await session.flush()
    log.info("public_booking.token_regenerated", resource_id=str(resource_id))
    return resource.public_booking_token


async def disable_public_booking(
    session: AsyncSession, actor_id: uuid.UUID, resource_id: uuid.UUID
) -> None:
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.resource(resource_id), AccessLevel.EDIT)

    resource = await session.get(Resource, resource_id)
    resource.public_booking_token = None
    session.add(resource)
    await session.flush()
    log.info("public_booking.disabled", resource_id=str(resource_id))
