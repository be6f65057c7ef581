"""
Grant management: organization admins and reservation calendar roles.

Organization admins are materialized as EDITOR rows on every calendar of the
organization, flagged ``is_auto_assigned_from_org_admin``. Those rows are
owned by the admin grant: they are created when the grant is added or a
calendar is created, and deleted only when the grant is removed. Calendar
level operations refuse to touch them.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.errors import Forbidden, InvalidRequest, NotFound
from booking_core.models.calendar import ReservationCalendar, ReservationCalendarRole
from booking_core.models.membership import OrganizationAdmin, OrganizationMembership
from booking_core.models.organization import Organization
from booking_core.models.user import User
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target

from booking_shared.schemas.common import AccessLevel, CalendarRoleType
from booking_shared.schemas.permissions import OrganizationAdminRead

log = structlog.get_logger()


async def _require_super_admin(session: AsyncSession, actor_id: uuid.UUID) -> None:
    actor = await session.get(User, actor_id)
    if actor is None or not actor.is_super_admin:
        raise Forbidden(
            "Only a platform administrator can manage organization admins.",
            required="super_admin",
        )


async def _get_org(session: AsyncSession, org_id: uuid.UUID) -> Organization:
    org = await session.get(Organization, org_id)
    if org is None:
        raise NotFound("Organization not found")
    return org


async def _get_calendar(session: AsyncSession, calendar_id: uuid.UUID) -> ReservationCalendar:
    calendar = await session.get(ReservationCalendar, calendar_id)
    if calendar is None:
        raise NotFound("Reservation calendar not found")
    return calendar


async def _auto_assign(
    session: AsyncSession,
    calendar_id: uuid.UUID,
    user_id: uuid.UUID,
    assigned_by_id: Optional[uuid.UUID],
) -> bool:
    """Add an auto-assigned EDITOR row unless the user already has a role there."""
    existing = await session.get(ReservationCalendarRole, (calendar_id, user_id))
    if existing is not None:
        return False
    session.add(
        ReservationCalendarRole(
            reservation_calendar_id=calendar_id,
            user_id=user_id,
            role=CalendarRoleType.EDITOR.value,
            is_auto_assigned_from_org_admin=True,
            assigned_by_id=assigned_by_id,
        )
    )
    return True


# ---------------------------------------------------------------------------
# Organization admins
# ---------------------------------------------------------------------------

async def assign_organization_admin(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
) -> OrganizationAdminRead:
    await _require_super_admin(session, actor_id)
    await _get_org(session, org_id)
    if await session.get(User, user_id) is None:
        raise NotFound("User not found")

    grant = await session.get(OrganizationAdmin, (org_id, user_id))
    if grant is None:
        grant = OrganizationAdmin(organization_id=org_id, user_id=user_id, assigned_by_id=actor_id)
        session.add(grant)

    result = await session.execute(
        select(ReservationCalendar.id).where(ReservationCalendar.organization_id == org_id)
    )
    assigned: list[uuid.UUID] = []
    for calendar_id in result.scalars().all():
        if await _auto_assign(session, calendar_id, user_id, actor_id):
            assigned.append(calendar_id)
    await session.flush()

    log.info(
        "grants.org_admin_assigned",
        org_id=str(org_id),
        user_id=str(user_id),
        calendars=len(assigned),
    )
    return OrganizationAdminRead(
        organization_id=org_id,
        user_id=user_id,
        assigned_by_id=grant.assigned_by_id,
        auto_assigned_calendar_ids=assigned,
    )


async def remove_organization_admin(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    user_id: uuid.UUID,
) -> int:
    """Remove the grant and its auto-assigned calendar rows. Returns rows removed."""
    await _require_super_admin(session, actor_id)
    grant = await session.get(OrganizationAdmin, (org_id, user_id))
    if grant is None:
        raise NotFound("Organization admin not found")

    calendar_ids = select(ReservationCalendar.id).where(
        ReservationCalendar.organization_id == org_id
    )
    result = await session.execute(
        delete(ReservationCalendarRole).where(
            ReservationCalendarRole.user_id == user_id,
            ReservationCalendarRole.is_auto_assigned_from_org_admin.is_(True),
            ReservationCalendarRole.reservation_calendar_id.in_(calendar_ids),
        )
    )
    await session.delete(grant)
    await session.flush()

    log.info(
        "grants.org_admin_removed",
        org_id=str(org_id),
        user_id=str(user_id),
        calendar_roles_removed=result.rowcount,
    )
    return result.rowcount


# ---------------------------------------------------------------------------
# Reservation calendars and roles
# ---------------------------------------------------------------------------

async def create_reservation_calendar(
    session: AsyncSession,
    actor_id: uuid.UUID,
    org_id: uuid.UUID,
    name: str,
    owning_calendar_id: Optional[uuid.UUID] = None,
) -> ReservationCalendar:
    """Create a calendar and give every organization admin an editor row on it."""
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.organization(org_id), AccessLevel.ADMIN)

    calendar = ReservationCalendar(
        organization_id=org_id, name=name, owning_calendar_id=owning_calendar_id
    )
    session.add(calendar)
    await session.flush()

    result = await session.execute(
        select(OrganizationAdmin.user_id).where(OrganizationAdmin.organization_id == org_id)
    )
    for admin_id in result.scalars().all():
        await _auto_assign(session, calendar.id, admin_id, actor_id)
    await session.flush()

    log.info("grants.calendar_created", org_id=str(org_id), calendar_id=str(calendar.id))
    return calendar


async def _require_calendar_manager(
    session: AsyncSession, actor_id: uuid.UUID, calendar: ReservationCalendar
) -> None:
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.organization(calendar.organization_id), AccessLevel.ADMIN)


async def list_calendar_roles(
    session: AsyncSession, actor_id: uuid.UUID, calendar_id: uuid.UUID
) -> list[ReservationCalendarRole]:
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.calendar(calendar_id), AccessLevel.VIEW)
    result = await session.execute(
        select(ReservationCalendarRole)
        .where(ReservationCalendarRole.reservation_calendar_id == calendar_id)
        .order_by(ReservationCalendarRole.assigned_at)
    )
    return list(result.scalars().all())


async def assign_calendar_role(
    session: AsyncSession,
    actor_id: uuid.UUID,
    calendar_id: uuid.UUID,
    user_id: uuid.UUID,
    role: CalendarRoleType,
) -> ReservationCalendarRole:
    calendar = await _get_calendar(session, calendar_id)
    await _require_calendar_manager(session, actor_id, calendar)

    org_id = calendar.organization_id
    is_member = await session.get(OrganizationMembership, (org_id, user_id)) is not None
    if not is_member and await session.get(OrganizationAdmin, (org_id, user_id)) is None:
        raise InvalidRequest(
            "The user must be a member of the organization to be assigned a calendar role.",
            reason="not_a_member",
        )

    existing = await session.get(ReservationCalendarRole, (calendar_id, user_id))
    if existing is not None and existing.is_auto_assigned_from_org_admin:
        raise InvalidRequest(
            "This role comes from an organization admin grant and cannot be changed here.",
            reason="auto_assigned",
        )

    if existing is None:
        existing = ReservationCalendarRole(
            reservation_calendar_id=calendar_id,
            user_id=user_id,
            role=role.value,
            assigned_by_id=actor_id,
        )
    else:
        existing.role = role.value
        existing.assigned_by_id = actor_id
    session.add(existing)
    await session.flush()

    log.info(
        "grants.calendar_role_assigned",
        calendar_id=str(calendar_id),
        user_id=str(user_id),
        role=role.value,
    )
    return existing


async def remove_calendar_role(
    session: AsyncSession,
    actor_id: uuid.UUID,
    calendar_id: uuid.UUID,
    user_id: uuid.UUID,
) -> None:
    calendar = await _get_calendar(session, calendar_id)
    await _require_calendar_manager(session, actor_id, calendar)

    existing = await session.get(ReservationCalendarRole, (calendar_id, user_id))
    if existing is None:
        raise NotFound("Calendar role not found")
    if existing.is_auto_assigned_from_org_admin:
        raise InvalidRequest(
            "Organization admin roles can only be removed by removing the admin grant.",
            reason="auto_assigned",
        )

    await session.delete(existing)
    await session.flush()
    log.info("grants.calendar_role_removed", calendar_id=str(calendar_id), user_id=str(user_id))
