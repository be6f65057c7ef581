"""
Reservation calendar role endpoints.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core.auth import get_current_user_id
from booking_core.core.database import get_session
from booking_core.services import grants
from booking_shared.schemas.permissions import CalendarRoleAssignRequest, CalendarRoleRead

router = APIRouter()


@router.get("/{calendar_id}/roles", response_model=list[CalendarRoleRead])
async def list_roles(
    calendar_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    return await grants.list_calendar_roles(session, actor_id, calendar_id)


@router.post("/{calendar_id}/roles", response_model=CalendarRoleRead, status_code=201)
async def assign_role(
    calendar_id: uuid.UUID,
    body: CalendarRoleAssignRequest,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Assign or change an explicit editor/reviewer role."""
    role = await grants.assign_calendar_role(session, actor_id, calendar_id, body.user_id, body.role)
    await session.commit()
    return role


@router.delete("/{calendar_id}/roles/{user_id}", status_code=204)
async def remove_role(
    calendar_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await grants.remove_calendar_role(session, actor_id, calendar_id, user_id)
    await session.commit()
