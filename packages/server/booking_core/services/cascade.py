"""
Cascade deletion of organizations, resource types and resources.

``preview_*`` counts what a deletion would remove; ``delete_*`` removes the
target and every dependent row inside the caller's transaction, children
first.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.errors import Forbidden, NotFound
from booking_core.models.calendar import ReservationCalendar, ReservationCalendarRole
from booking_core.models.membership import OrganizationAdmin, OrganizationMembership
from booking_core.models.organization import Organization
from booking_core.models.permission import GranularCalendarPermission, GranularResourcePermission
from booking_core.models.reservation import Reservation
from booking_core.models.resource import Resource, ResourceType
from booking_core.models.user import User
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target

from booking_shared.schemas.common import AccessLevel, TargetType
from booking_shared.schemas.organizations import (
    CascadeDeletePreview,
    CascadeDeleteResult,
    CascadeTarget,
)

log = structlog.get_logger()


async def _count(session: AsyncSession, stmt) -> int:
    result = await session.execute(select(func.count()).select_from(stmt.subquery()))
    return int(result.scalar_one())


def _details(preview: CascadeDeletePreview) -> list[str]:
    details = []
    for label, count in (
        ("resource type", preview.resource_types),
        ("resource", preview.resources),
        ("reservation", preview.reservations),
        ("reservation calendar", preview.reservation_calendars),
    ):
        if count:
            details.append(f"{count} {label}{'' if count == 1 else 's'}")
    return details


async def _authorize(session: AsyncSession, actor_id: uuid.UUID, target: Target) -> None:
    if target.type == TargetType.ORGANIZATION:
        actor = await session.get(User, actor_id)
        if actor is None or not actor.is_super_admin:
            raise Forbidden(
                "Only a platform administrator can delete an organization.",
                required="super_admin",
            )
        return
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, target, AccessLevel.ADMIN)


# ---------------------------------------------------------------------------
# Previews
# ---------------------------------------------------------------------------

async def preview_organization(session: AsyncSession, org_id: uuid.UUID) -> CascadeDeletePreview:
    org = await session.get(Organization, org_id)
    if org is None:
        raise NotFound("Organization not found")

    type_ids = select(ResourceType.id).where(ResourceType.organization_id == org_id)
    resource_ids = select(Resource.id).where(Resource.resource_type_id.in_(type_ids))
    preview = CascadeDeletePreview(
        target=CascadeTarget.ORGANIZATION,
        name=org.name,
        resource_types=await _count(session, type_ids),
        resources=await _count(session, resource_ids),
        reservations=await _count(
            session, select(Reservation.id).where(Reservation.resource_id.in_(resource_ids))
        ),
        reservation_calendars=await _count(
            session,
            select(ReservationCalendar.id).where(ReservationCalendar.organization_id == org_id),
        ),
    )
    preview.details = _details(preview)
    return preview


async def preview_resource_type(
    session: AsyncSession, resource_type_id: uuid.UUID
) -> CascadeDeletePreview:
    resource_type = await session.get(ResourceType, resource_type_id)
    if resource_type is None:
        raise NotFound("Resource type not found")

    resource_ids = select(Resource.id).where(Resource.resource_type_id == resource_type_id)
    preview = CascadeDeletePreview(
        target=CascadeTarget.RESOURCE_TYPE,
        name=resource_type.name,
        resource_types=1,
        resources=await _count(session, resource_ids),
        reservations=await _count(
            session, select(Reservation.id).where(Reservation.resource_id.in_(resource_ids))
        ),
    )
    preview.details = _details(preview)
    return preview


async def preview_resource(session: AsyncSession, resource_id: uuid.UUID) -> CascadeDeletePreview:
    resource = await session.get(Resource, resource_id)
    if resource is None:
        raise NotFound("Resource not found")

    preview = CascadeDeletePreview(
        target=CascadeTarget.RESOURCE,
        name=resource.name,
        resources=1,
        reservations=await _count(
            session, select(Reservation.id).where(Reservation.resource_id == resource_id)
        ),
    )
    preview.details = _details(preview)
    return preview


# ---------------------------------------------------------------------------
# Deletions
# ---------------------------------------------------------------------------

async def _delete_resources(session: AsyncSession, resource_ids) -> None:
    await session.execute(delete(Reservation).where(Reservation.resource_id.in_(resource_ids)))
    await session.execute(delete(Resource).where(Resource.id.in_(resource_ids)))


async def delete_resource(
    session: AsyncSession, actor_id: uuid.UUID, resource_id: uuid.UUID
) -> CascadeDeleteResult:
    preview = await preview_resource(session, resource_id)
    await _authorize(session, actor_id, Target.resource(resource_id))

    await _delete_resources(session, [resource_id])
    await session.flush()
    log.info("cascade.resource_deleted", resource_id=str(resource_id), reservations=preview.reservations)
    return CascadeDeleteResult(
        success=True, message=f"Resource '{preview.name}' deleted", preview=preview
    )


async def delete_resource_type(
    session: AsyncSession, actor_id: uuid.UUID, resource_type_id: uuid.UUID
) -> CascadeDeleteResult:
    preview = await preview_resource_type(session, resource_type_id)
    await _authorize(session, actor_id, Target.resource_type(resource_type_id))

    resource_ids = select(Resource.id).where(Resource.resource_type_id == resource_type_id)
    await _delete_resources(session, resource_ids)
    await session.execute(
        delete(GranularResourcePermission).where(
            GranularResourcePermission.resource_type_id == resource_type_id
        )
    )
    await session.execute(delete(ResourceType).where(ResourceType.id == resource_type_id))
    await session.flush()
    log.info(
        "cascade.resource_type_deleted",
        resource_type_id=str(resource_type_id),
        total_items=preview.total_items,
    )
    return CascadeDeleteResult(
        success=True, message=f"Resource type '{preview.name}' deleted", preview=preview
    )


async def delete_organization(
    session: AsyncSession, actor_id: uuid.UUID, org_id: uuid.UUID
) -> CascadeDeleteResult:
    preview = await preview_organization(session, org_id)
    await _authorize(session, actor_id, Target.organization(org_id))

    type_ids = select(ResourceType.id).where(ResourceType.organization_id == org_id)
    calendar_ids = select(ReservationCalendar.id).where(
        ReservationCalendar.organization_id == org_id
    )
    await _delete_resources(session, select(Resource.id).where(Resource.resource_type_id.in_(type_ids)))
    await session.execute(
        delete(GranularResourcePermission).where(GranularResourcePermission.organization_id == org_id)
    )
    await session.execute(
        delete(GranularCalendarPermission).where(GranularCalendarPermission.organization_id == org_id)
    )
    await session.execute(
        delete(ReservationCalendarRole).where(
            ReservationCalendarRole.reservation_calendar_id.in_(calendar_ids)
        )
    )
    await session.execute(
        delete(ReservationCalendar).where(ReservationCalendar.organization_id == org_id)
    )
    await session.execute(delete(ResourceType).where(ResourceType.organization_id == org_id))
    await session.execute(
        delete(OrganizationMembership).where(OrganizationMembership.organization_id == org_id)
    )
    await session.execute(delete(OrganizationAdmin).where(OrganizationAdmin.organization_id == org_id))
    await session.execute(delete(Organization).where(Organization.id == org_id))
    await session.flush()
    log.info("cascade.organization_deleted", org_id=str(org_id), total_items=preview.total_items)
    return CascadeDeleteResult(
        success=True, message=f"Organization '{preview.name}' deleted", preview=preview
    )
