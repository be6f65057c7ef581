"""
Shared fixtures: a SQLite file database per test and a small data builder.

Each builder call runs in its own committed session. Never keep a session
open while calling a service: SQLite write transactions are serialized and an
open one blocks every other connection.
"""

import os

os.environ.setdefault("BOOKING_DATABASE_URL", "sqlite+aiosqlite:///./booking-dev.db")
os.environ.setdefault("BOOKING_LOG_FORMAT", "text")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlmodel import SQLModel

from booking_core.core.database import build_engine, build_session_factory
from booking_core.models import (
    GranularCalendarPermission,
    GranularResourcePermission,
    Organization,
    OrganizationAdmin,
    OrganizationMembership,
    Reservation,
    ReservationCalendar,
    ReservationCalendarRole,
    Resource,
    ResourceType,
    User,
)

BASE_TIME = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: int = 0) -> datetime:
    """A fixed UTC instant on the test day."""
    return BASE_TIME.replace(hour=hour, minute=minute) + timedelta(days=day)


class World:
    """Builds directory and booking rows, one committed session per call."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *objects):
        async with self.session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects[0] if len(objects) == 1 else objects

    async def user(self, name: str = "user", *, super_admin: bool = False) -> User:
        suffix = uuid.uuid4().hex[:8]
        return await self.add(
            User(email=f"{name}-{suffix}@example.com", display_name=name, is_super_admin=super_admin)
        )

    async def org(
        self,
        name: str = "Acme",
        *,
        granular_resources: bool = False,
        granular_calendars: bool = False,
    ) -> Organization:
        return await self.add(
            Organization(
                name=name,
                slug=f"{name.lower()}-{uuid.uuid4().hex[:8]}",
                granular_resource_permissions=granular_resources,
                granular_calendar_permissions=granular_calendars,
            )
        )

    async def resource_type(self, org: Organization, name: str = "Rooms") -> ResourceType:
        return await self.add(ResourceType(organization_id=org.id, name=name))

    async def resource(
        self,
        resource_type: ResourceType,
        *,
        capacity: int = 1,
        name: str = "Room",
        is_active: bool = True,
        token: Optional[str] = None,
        managed_by: Optional[User] = None,
    ) -> Resource:
        return await self.add(
            Resource(
                resource_type_id=resource_type.id,
                name=name,
                capacity=capacity,
                is_active=is_active,
                public_booking_token=token,
                managed_by_id=managed_by.id if managed_by else None,
            )
        )

    async def calendar(self, org: Organization, name: str = "Front desk") -> ReservationCalendar:
        return await self.add(ReservationCalendar(organization_id=org.id, name=name))

    async def member(self, org: Organization, user: User, role: str = "member") -> OrganizationMembership:
        return await self.add(OrganizationMembership(organization_id=org.id, user_id=user.id, role=role))

    async def org_admin(self, org: Organization, user: User) -> OrganizationAdmin:
        return await self.add(OrganizationAdmin(organization_id=org.id, user_id=user.id))

    async def calendar_role(
        self,
        calendar: ReservationCalendar,
        user: User,
        role: str = "reviewer",
        *,
        auto: bool = False,
    ) -> ReservationCalendarRole:
        return await self.add(
            ReservationCalendarRole(
                reservation_calendar_id=calendar.id,
                user_id=user.id,
                role=role,
                is_auto_assigned_from_org_admin=auto,
            )
        )

    async def resource_grant(
        self, org: Organization, user: User, resource_type: ResourceType, *, view=True, edit=False
    ) -> GranularResourcePermission:
        return await self.add(
            GranularResourcePermission(
                organization_id=org.id,
                user_id=user.id,
                resource_type_id=resource_type.id,
                can_view=view,
                can_edit=edit,
            )
        )

    async def calendar_grant(
        self, org: Organization, user: User, calendar: ReservationCalendar, *, view=True, edit=False
    ) -> GranularCalendarPermission:
        return await self.add(
            GranularCalendarPermission(
                organization_id=org.id,
                user_id=user.id,
                reservation_calendar_id=calendar.id,
                can_view=view,
                can_edit=edit,
            )
        )

    async def reservation(
        self,
        resource: Resource,
        start: datetime,
        end: datetime,
        *,
        quantity: int = 1,
        status: str = "confirmed",
        created_by: Optional[User] = None,
    ) -> Reservation:
        return await self.add(
            Reservation(
                resource_id=resource.id,
                start_time=start,
                end_time=end,
                quantity=quantity,
                status=status,
                created_by_id=created_by.id if created_by else None,
            )
        )


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def world(session_factory) -> World:
    return World(session_factory)


@pytest.fixture
async def bookable(world):
    """An organization admin and a capacity-3 resource they manage."""
    admin = await world.user("admin")
    org = await world.org()
    await world.org_admin(org, admin)
    rooms = await world.resource_type(org)
    resource = await world.resource(rooms, capacity=3, managed_by=admin)
    return admin, org, rooms, resource
