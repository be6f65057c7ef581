#!/usr/bin/env python3
"""Seed a development database with an organization, users, resources and calendars.

Usage:
    python scripts/seed_dev_data.py

Requires BOOKING_DATABASE_URL (or defaults to localhost). Creates the tables
when they are missing, so it also works against a fresh SQLite file.
"""

import asyncio
import uuid

from booking_core.core.database import get_session_context, init_db
from booking_core.models import (
    Organization,
    OrganizationAdmin,
    OrganizationMembership,
    ReservationCalendar,
    ReservationCalendarRole,
    Resource,
    ResourceType,
    User,
)

# Deterministic UUIDs for reproducibility
ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
SUPER_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
ORG_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000011")
MEMBER_ID = uuid.UUID("00000000-0000-0000-0000-000000000012")
REVIEWER_ID = uuid.UUID("00000000-0000-0000-0000-000000000013")
ROOMS_TYPE_ID = uuid.UUID("00000000-0000-0000-0000-000000000100")
EQUIPMENT_TYPE_ID = uuid.UUID("00000000-0000-0000-0000-000000000101")
RESOURCE_IDS = [uuid.UUID(f"00000000-0000-0000-0000-0000000002{i:02d}") for i in range(3)]
CALENDAR_ID = uuid.UUID("00000000-0000-0000-0000-000000000300")


async def seed():
    await init_db()

    async with get_session_context() as session:
        if await session.get(Organization, ORG_ID) is not None:
            print("Seed data already present.")
            return

        session.add_all([
            User(id=SUPER_ADMIN_ID, email="root@acme.dev", display_name="Platform Admin", is_super_admin=True),
            User(id=ORG_ADMIN_ID, email="alice@acme.dev", display_name="Alice"),
            User(id=MEMBER_ID, email="bob@acme.dev", display_name="Bob"),
            User(id=REVIEWER_ID, email="carol@acme.dev", display_name="Carol"),
            Organization(id=ORG_ID, name="Acme Robotics", slug="acme-robotics"),
        ])
        await session.flush()

        session.add_all([
            OrganizationAdmin(organization_id=ORG_ID, user_id=ORG_ADMIN_ID, assigned_by_id=SUPER_ADMIN_ID),
            OrganizationMembership(organization_id=ORG_ID, user_id=ORG_ADMIN_ID, role="admin"),
            OrganizationMembership(organization_id=ORG_ID, user_id=MEMBER_ID, role="member"),
            OrganizationMembership(organization_id=ORG_ID, user_id=REVIEWER_ID, role="member"),
            ResourceType(id=ROOMS_TYPE_ID, organization_id=ORG_ID, name="Meeting rooms"),
            ResourceType(id=EQUIPMENT_TYPE_ID, organization_id=ORG_ID, name="Lab equipment"),
            ReservationCalendar(id=CALENDAR_ID, organization_id=ORG_ID, name="Front desk"),
        ])
        await session.flush()

        session.add_all([
            Resource(
                id=RESOURCE_IDS[0], resource_type_id=ROOMS_TYPE_ID, name="Board room",
                capacity=1, managed_by_id=ORG_ADMIN_ID, public_booking_token="board-room-demo",
            ),
            Resource(
                id=RESOURCE_IDS[1], resource_type_id=ROOMS_TYPE_ID, name="Hot desks",
                capacity=8, managed_by_id=ORG_ADMIN_ID,
            ),
            Resource(
                id=RESOURCE_IDS[2], resource_type_id=EQUIPMENT_TYPE_ID, name="3D printer",
                capacity=3, managed_by_id=ORG_ADMIN_ID,
            ),
            ReservationCalendarRole(
                reservation_calendar_id=CALENDAR_ID, user_id=ORG_ADMIN_ID, role="editor",
                is_auto_assigned_from_org_admin=True, assigned_by_id=SUPER_ADMIN_ID,
            ),
            ReservationCalendarRole(
                reservation_calendar_id=CALENDAR_ID, user_id=REVIEWER_ID, role="reviewer",
                assigned_by_id=ORG_ADMIN_ID,
            ),
        ])

    print("Seeded: 1 org, 4 users, 2 resource types, 3 resources, 1 calendar.")
    print(f"  super-admin token: Bearer {SUPER_ADMIN_ID}")
    print(f"  org-admin token:   Bearer {ORG_ADMIN_ID}")
    print("  public booking:    /api/v1/public/booking/board-room-demo")


if __name__ == "__main__":
    asyncio.run(seed())
