"""
Directory store: read contracts over users, organizations, grants and targets.

The permission resolver only sees this protocol. ``SqlDirectoryStore`` reads
through a request-scoped ``AsyncSession``; tests substitute an in-memory
implementation.
"""

from __future__ import annotations

import uuid
from typing import Optional, Protocol

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.models.calendar import ReservationCalendar, ReservationCalendarRole
from booking_core.models.membership import OrganizationAdmin, OrganizationMembership
from booking_core.models.organization import Organization
from booking_core.models.permission import (
    GranularCalendarPermission,
    GranularResourcePermission,
)
from booking_core.models.resource import Resource, ResourceType
from booking_core.models.user import User


class DirectoryStore(Protocol):
    async def get_user(self, user_id: uuid.UUID) -> Optional[User]: ...

    async def get_organization(self, org_id: uuid.UUID) -> Optional[Organization]: ...

    async def get_resource_type(self, resource_type_id: uuid.UUID) -> Optional[ResourceType]: ...

    async def get_resource(self, resource_id: uuid.UUID) -> Optional[Resource]: ...

    async def get_calendar(self, calendar_id: uuid.UUID) -> Optional[ReservationCalendar]: ...

    async def is_organization_admin(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool: ...

    async def get_membership(
        self, org_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[OrganizationMembership]: ...

    async def get_calendar_role(
        self, calendar_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[ReservationCalendarRole]: ...

    async def get_resource_grant(
        self, org_id: uuid.UUID, user_id: uuid.UUID, resource_type_id: uuid.UUID
    ) -> Optional[GranularResourcePermission]: ...

    async def get_calendar_grant(
        self, org_id: uuid.UUID, user_id: uuid.UUID, calendar_id: uuid.UUID
    ) -> Optional[GranularCalendarPermission]: ...

    async def admin_organization_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...

    async def member_organization_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...

    async def calendar_roles_for_user(self, user_id: uuid.UUID) -> list[ReservationCalendarRole]: ...

    async def resource_grants_for_user(
        self, user_id: uuid.UUID
    ) -> list[GranularResourcePermission]: ...

    async def calendar_grants_for_user(
        self, user_id: uuid.UUID
    ) -> list[GranularCalendarPermission]: ...

    async def list_organizations(
        self, org_ids: Optional[set[uuid.UUID]] = None
    ) -> list[Organization]: ...

    async def list_calendars(
        self,
        org_ids: Optional[set[uuid.UUID]] = None,
        calendar_ids: Optional[set[uuid.UUID]] = None,
    ) -> list[ReservationCalendar]: ...


class SqlDirectoryStore:
    """DirectoryStore over the relational schema."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_organization(self, org_id: uuid.UUID) -> Optional[Organization]:
        return await self.session.get(Organization, org_id)

    async def get_resource_type(self, resource_type_id: uuid.UUID) -> Optional[ResourceType]:
        return await self.session.get(ResourceType, resource_type_id)

    async def get_resource(self, resource_id: uuid.UUID) -> Optional[Resource]:
        return await self.session.get(Resource, resource_id)

    async def get_calendar(self, calendar_id: uuid.UUID) -> Optional[ReservationCalendar]:
        return await self.session.get(ReservationCalendar, calendar_id)

    async def is_organization_admin(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        return await self.session.get(OrganizationAdmin, (org_id, user_id)) is not None

    async def get_membership(
        self, org_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[OrganizationMembership]:
        return await self.session.get(OrganizationMembership, (org_id, user_id))

    async def get_calendar_role(
        self, calendar_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[ReservationCalendarRole]:
        return await self.session.get(ReservationCalendarRole, (calendar_id, user_id))

    async def get_resource_grant(
        self, org_id: uuid.UUID, user_id: uuid.UUID, resource_type_id: uuid.UUID
    ) -> Optional[GranularResourcePermission]:
        result = await self.session.execute(
            select(GranularResourcePermission).where(
                GranularResourcePermission.organization_id == org_id,
                GranularResourcePermission.user_id == user_id,
                GranularResourcePermission.resource_type_id == resource_type_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_calendar_grant(
        self, org_id: uuid.UUID, user_id: uuid.UUID, calendar_id: uuid.UUID
    ) -> Optional[GranularCalendarPermission]:
        result = await self.session.execute(
            select(GranularCalendarPermission).where(
                GranularCalendarPermission.organization_id == org_id,
                GranularCalendarPermission.user_id == user_id,
                GranularCalendarPermission.reservation_calendar_id == calendar_id,
            )
        )
        return result.scalar_one_or_none()

    async def admin_organization_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.session.execute(
            select(OrganizationAdmin.organization_id).where(OrganizationAdmin.user_id == user_id)
        )
        return set(result.scalars().all())

    async def member_organization_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        result = await self.session.execute(
            select(OrganizationMembership.organization_id).where(
                OrganizationMembership.user_id == user_id
            )
        )
        return set(result.scalars().all())

    async def calendar_roles_for_user(self, user_id: uuid.UUID) -> list[ReservationCalendarRole]:
        result = await self.session.execute(
            select(ReservationCalendarRole).where(ReservationCalendarRole.user_id == user_id)
        )
        return list(result.scalars().all())

    async def resource_grants_for_user(
        self, user_id: uuid.UUID
    ) -> list[GranularResourcePermission]:
        result = await self.session.execute(
            select(GranularResourcePermission).where(
                GranularResourcePermission.user_id == user_id,
                or_(
                    GranularResourcePermission.can_view.is_(True),
                    GranularResourcePermission.can_edit.is_(True),
                ),
            )
        )
        return list(result.scalars().all())

    async def calendar_grants_for_user(
        self, user_id: uuid.UUID
    ) -> list[GranularCalendarPermission]:
        result = await self.session.execute(
            select(GranularCalendarPermission).where(
                GranularCalendarPermission.user_id == user_id,
                or_(
                    GranularCalendarPermission.can_view.is_(True),
                    GranularCalendarPermission.can_edit.is_(True),
                ),
            )
        )
        return list(result.scalars().all())

    async def list_organizations(
        self, org_ids: Optional[set[uuid.UUID]] = None
    ) -> list[Organization]:
        stmt = select(Organization).order_by(Organization.name, Organization.id)
        if org_ids is not None:
            if not org_ids:
                return []
            stmt = stmt.where(Organization.id.in_(org_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_calendars(
        self,
        org_ids: Optional[set[uuid.UUID]] = None,
        calendar_ids: Optional[set[uuid.UUID]] = None,
    ) -> list[ReservationCalendar]:
        """Calendars in ``org_ids`` or listed in ``calendar_ids``; both None means all."""
        stmt = select(ReservationCalendar).order_by(
            ReservationCalendar.name, ReservationCalendar.id
        )
        if org_ids is not None or calendar_ids is not None:
            clauses = []
            if org_ids:
                clauses.append(ReservationCalendar.organization_id.in_(org_ids))
            if calendar_ids:
                clauses.append(ReservationCalendar.id.in_(calendar_ids))
            if not clauses:
                return []
            stmt = stmt.where(or_(*clauses))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
