"""
Organization endpoints: admin grants, reservation calendars, cascade deletion.

Two routers:
- router: /organizations/{org_id}/...
- resource_types_router: /resource-types/{resource_type_id}/...
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core.auth import get_current_user_id
from booking_core.core.database import get_session
from booking_core.core.errors import Forbidden
from booking_core.models.user import User
from booking_core.services import cascade, grants
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target
from booking_shared.schemas.common import AccessLevel
from booking_shared.schemas.organizations import CascadeDeletePreview, CascadeDeleteResult
from booking_shared.schemas.permissions import CalendarSummary, OrganizationAdminRead

router = APIRouter()
resource_types_router = APIRouter()


class CalendarCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    owning_calendar_id: Optional[uuid.UUID] = None


# ---------------------------------------------------------------------------
# Admin grants
# ---------------------------------------------------------------------------

@router.post("/{org_id}/admins/{user_id}", response_model=OrganizationAdminRead, status_code=201)
async def add_organization_admin(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Grant organization admin (platform administrators only)."""
    result = await grants.assign_organization_admin(session, actor_id, org_id, user_id)
    await session.commit()
    return result


@router.delete("/{org_id}/admins/{user_id}", status_code=204)
async def remove_organization_admin(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await grants.remove_organization_admin(session, actor_id, org_id, user_id)
    await session.commit()


# ---------------------------------------------------------------------------
# Reservation calendars
# ---------------------------------------------------------------------------

@router.post("/{org_id}/reservation-calendars", response_model=CalendarSummary, status_code=201)
async def create_reservation_calendar(
    org_id: uuid.UUID,
    body: CalendarCreate,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    calendar = await grants.create_reservation_calendar(
        session, actor_id, org_id, body.name, body.owning_calendar_id
    )
    await session.commit()
    decision = await PermissionResolver(SqlDirectoryStore(session)).decide(
        actor_id, Target.calendar(calendar.id)
    )
    return CalendarSummary(
        id=calendar.id,
        organization_id=calendar.organization_id,
        name=calendar.name,
        level=decision.level.label,
        can_review=decision.can_review,
    )


# ---------------------------------------------------------------------------
# Cascade deletion
# ---------------------------------------------------------------------------

@router.get("/{org_id}/deletion-preview", response_model=CascadeDeletePreview)
async def preview_delete_organization(
    org_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    actor = await session.get(User, actor_id)
    if actor is None or not actor.is_super_admin:
        raise Forbidden("Only a platform administrator can delete an organization.")
    return await cascade.preview_organization(session, org_id)


@router.delete("/{org_id}", response_model=CascadeDeleteResult)
async def delete_organization(
    org_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await cascade.delete_organization(session, actor_id, org_id)
    await session.commit()
    return result


@resource_types_router.get("/{resource_type_id}/deletion-preview", response_model=CascadeDeletePreview)
async def preview_delete_resource_type(
    resource_type_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(actor_id, Target.resource_type(resource_type_id), AccessLevel.ADMIN)
    return await cascade.preview_resource_type(session, resource_type_id)


@resource_types_router.delete("/{resource_type_id}", response_model=CascadeDeleteResult)
async def delete_resource_type(
    resource_type_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await cascade.delete_resource_type(session, actor_id, resource_type_id)
    await session.commit()
    return result
