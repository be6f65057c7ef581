"""
Grant management tests: organization admins and calendar roles.

Tests cover:
- Org admin grant materializes auto-assigned editor rows, removal deletes them
- New calendars auto-assign existing org admins
- Explicit role assignment rules (membership required, auto rows protected)
- Resolver reads through the SQL directory store
"""

from __future__ import annotations

import pytest
from sqlmodel import select

from booking_core.core.errors import Forbidden, InvalidRequest, NotFound
from booking_core.models import ReservationCalendarRole
from booking_core.services import grants
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target
from booking_shared.schemas.common import AccessLevel, CalendarRoleType


async def _roles(session_factory, calendar_id) -> dict:
    async with session_factory() as session:
        result = await session.execute(
            select(ReservationCalendarRole).where(
                ReservationCalendarRole.reservation_calendar_id == calendar_id
            )
        )
        return {r.user_id: r for r in result.scalars().all()}


async def _level(session_factory, user_id, target) -> AccessLevel:
    async with session_factory() as session:
        return await PermissionResolver(SqlDirectoryStore(session)).resolve(user_id, target)


@pytest.fixture
async def setup(world):
    root = await world.user("root", super_admin=True)
    org = await world.org()
    calendar = await world.calendar(org)
    return root, org, calendar


async def test_assign_org_admin_materializes_roles(world, session_factory, setup):
    root, org, calendar = setup
    alice = await world.user("alice")

    async with session_factory() as session:
        result = await grants.assign_organization_admin(session, root.id, org.id, alice.id)
        await session.commit()

    assert result.auto_assigned_calendar_ids == [calendar.id]
    role = (await _roles(session_factory, calendar.id))[alice.id]
    assert role.role == "editor"
    assert role.is_auto_assigned_from_org_admin
    assert await _level(session_factory, alice.id, Target.organization(org.id)) == AccessLevel.ADMIN


async def test_only_super_admin_assigns_org_admins(world, session_factory, setup):
    _, org, _ = setup
    alice, bob = await world.user("alice"), await world.user("bob")
    await world.org_admin(org, alice)

    async with session_factory() as session:
        with pytest.raises(Forbidden):
            await grants.assign_organization_admin(session, alice.id, org.id, bob.id)


async def test_remove_org_admin_removes_only_auto_rows(world, session_factory, setup):
    root, org, calendar = setup
    other_calendar = await world.calendar(org, "Back office")
    alice = await world.user("alice")
    await world.member(org, alice)
    await world.calendar_role(other_calendar, alice, "reviewer")

    async with session_factory() as session:
        await grants.assign_organization_admin(session, root.id, org.id, alice.id)
        await session.commit()
    async with session_factory() as session:
        removed = await grants.remove_organization_admin(session, root.id, org.id, alice.id)
        await session.commit()

    assert removed == 1
    assert alice.id not in await _roles(session_factory, calendar.id)
    assert (await _roles(session_factory, other_calendar.id))[alice.id].role == "reviewer"
    assert await _level(session_factory, alice.id, Target.calendar(calendar.id)) == AccessLevel.VIEW

    async with session_factory() as session:
        with pytest.raises(NotFound):
            await grants.remove_organization_admin(session, root.id, org.id, alice.id)


async def test_new_calendar_auto_assigns_admins(world, session_factory, setup):
    _, org, _ = setup
    alice, bob = await world.user("alice"), await world.user("bob")
    await world.org_admin(org, alice)
    await world.org_admin(org, bob)

    async with session_factory() as session:
        calendar = await grants.create_reservation_calendar(session, alice.id, org.id, "Events")
        await session.commit()

    roles = await _roles(session_factory, calendar.id)
    assert set(roles) == {alice.id, bob.id}
    assert all(r.is_auto_assigned_from_org_admin for r in roles.values())
    assert await _level(session_factory, bob.id, Target.calendar(calendar.id)) == AccessLevel.EDIT


async def test_member_cannot_create_calendar(world, session_factory, setup):
    _, org, _ = setup
    member = await world.user("member")
    await world.member(org, member)

    async with session_factory() as session:
        with pytest.raises(Forbidden):
            await grants.create_reservation_calendar(session, member.id, org.id, "Nope")


async def test_assign_and_change_calendar_role(world, session_factory, setup):
    _, org, calendar = setup
    admin, carol = await world.user("admin"), await world.user("carol")
    await world.org_admin(org, admin)
    await world.member(org, carol)

    async with session_factory() as session:
        await grants.assign_calendar_role(session, admin.id, calendar.id, carol.id, CalendarRoleType.REVIEWER)
        await session.commit()
    assert await _level(session_factory, carol.id, Target.calendar(calendar.id)) == AccessLevel.VIEW

    async with session_factory() as session:
        await grants.assign_calendar_role(session, admin.id, calendar.id, carol.id, CalendarRoleType.EDITOR)
        await session.commit()
    assert await _level(session_factory, carol.id, Target.calendar(calendar.id)) == AccessLevel.EDIT

    async with session_factory() as session:
        await grants.remove_calendar_role(session, admin.id, calendar.id, carol.id)
        await session.commit()
    assert carol.id not in await _roles(session_factory, calendar.id)


async def test_calendar_role_requires_membership(world, session_factory, setup):
    _, org, calendar = setup
    admin, outsider = await world.user("admin"), await world.user("outsider")
    await world.org_admin(org, admin)

    async with session_factory() as session:
        with pytest.raises(InvalidRequest) as excinfo:
            await grants.assign_calendar_role(
                session, admin.id, calendar.id, outsider.id, CalendarRoleType.EDITOR
            )
    assert excinfo.value.details == {"reason": "not_a_member"}


async def test_auto_assigned_rows_are_protected(world, session_factory, setup):
    root, org, calendar = setup
    alice = await world.user("alice")
    async with session_factory() as session:
        await grants.assign_organization_admin(session, root.id, org.id, alice.id)
        await session.commit()

    async with session_factory() as session:
        with pytest.raises(InvalidRequest):
            await grants.remove_calendar_role(session, root.id, calendar.id, alice.id)
        with pytest.raises(InvalidRequest):
            await grants.assign_calendar_role(
                session, root.id, calendar.id, alice.id, CalendarRoleType.REVIEWER
            )
    assert (await _roles(session_factory, calendar.id))[alice.id].is_auto_assigned_from_org_admin


async def test_accessible_targets_through_sql_store(world, session_factory, setup):
    _, org, calendar = setup
    other = await world.org("Zeta", granular_calendars=True)
    hidden = await world.calendar(other, "Hidden")
    carol = await world.user("carol")
    await world.member(org, carol)
    await world.member(other, carol)

    async with session_factory() as session:
        resolver = PermissionResolver(SqlDirectoryStore(session))
        orgs = await resolver.accessible_organizations(carol.id)
        calendars = await resolver.accessible_reservation_calendars(carol.id)

    assert [o.id for o in orgs] == [org.id, other.id]
    assert [c.calendar.id for c in calendars] == [calendar.id]
    assert hidden.id not in [c.calendar.id for c in calendars]
