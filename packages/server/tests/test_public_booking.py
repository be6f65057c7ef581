"""
Public booking tests: token lookup, availability, confirmed bookings.
"""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from booking_core.core.errors import CapacityExceeded, Forbidden, NotFound
from booking_core.models import IdempotencyRecord
from booking_core.services.public_booking import (
    create_public_booking,
    get_public_resource,
    public_availability,
    regenerate_public_token,
)
from booking_core.services.reservations import PUBLIC_ACTOR_ID
from booking_shared.schemas.common import ReservationStatus
from booking_shared.schemas.reservations import PublicBookingCreate

from conftest import at


@pytest.fixture
async def public_resource(world, bookable):
    admin, _, rooms, _ = bookable
    return await world.resource(
        rooms, capacity=2, name="Studio", token="studio-token", managed_by=admin
    )


def _booking(start=None, end=None, quantity=1):
    return PublicBookingCreate(
        start_time=start or at(10),
        end_time=end or at(11),
        quantity=quantity,
        customer_name="Dana",
        customer_email="dana@example.com",
    )


async def test_public_resource_info(session_factory, public_resource):
    async with session_factory() as session:
        info = await get_public_resource(session, "studio-token")
    assert info.name == "Studio"
    assert info.capacity == 2
    assert info.resource_type_name == "Rooms"
    assert not hasattr(info, "public_booking_token")


async def test_unknown_and_inactive_tokens_are_not_found(world, session_factory, bookable):
    _, _, rooms, _ = bookable
    await world.resource(rooms, token="closed-token", is_active=False)

    async with session_factory() as session:
        for token in ("nope", "closed-token", ""):
            with pytest.raises(NotFound):
                await get_public_resource(session, token)


async def test_public_booking_is_confirmed_and_anonymous(session_factory, public_resource):
    confirmation, outcome = await create_public_booking(session_factory, "studio-token", _booking())

    assert confirmation.status == ReservationStatus.CONFIRMED
    assert confirmation.resource_name == "Studio"
    assert outcome.reservation.created_by_id is None
    assert outcome.reservation.customer_email == "dana@example.com"
    [event] = outcome.events
    assert event.actor_id == PUBLIC_ACTOR_ID
    assert event.recipient_ids == [public_resource.managed_by_id]


async def test_public_booking_respects_capacity(world, session_factory, public_resource):
    await world.reservation(public_resource, at(10), at(11), quantity=1)
    await create_public_booking(session_factory, "studio-token", _booking())

    with pytest.raises(CapacityExceeded):
        await create_public_booking(session_factory, "studio-token", _booking())

    async with session_factory() as session:
        read = await public_availability(session, "studio-token", at(10), at(11))
    assert read.remaining == 0


async def test_public_booking_idempotency(session_factory, public_resource):
    first, _ = await create_public_booking(session_factory, "studio-token", _booking(), "web-1")
    again, outcome = await create_public_booking(session_factory, "studio-token", _booking(), "web-1")

    assert outcome.replayed
    assert again.reservation_id == first.reservation_id

    async with session_factory() as session:
        [record] = (await session.execute(select(IdempotencyRecord))).scalars().all()
    assert record.user_id == PUBLIC_ACTOR_ID
    assert record.scope.endswith(str(public_resource.id))


async def test_regenerate_token(world, session_factory, bookable, public_resource):
    admin, org, _, _ = bookable

    async with session_factory() as session:
        new_token = await regenerate_public_token(session, admin.id, public_resource.id)
        await session.commit()
    assert new_token != "studio-token"

    with pytest.raises(NotFound):
        await create_public_booking(session_factory, "studio-token", _booking())
    confirmation, _ = await create_public_booking(session_factory, new_token, _booking())
    assert confirmation.status == ReservationStatus.CONFIRMED

    member = await world.user("member")
    await world.member(org, member)
    async with session_factory() as session:
        with pytest.raises(Forbidden):
            await regenerate_public_token(session, member.id, public_resource.id)
        with pytest.raises(NotFound):
            await regenerate_public_token(session, admin.id, uuid.uuid4())
