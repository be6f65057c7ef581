"""
Permission endpoints: the caller's accessible targets and access decisions.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core.auth import get_current_user_id
from booking_core.core.database import get_session
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target
from booking_shared.schemas.common import TargetType
from booking_shared.schemas.permissions import (
    AccessDecisionRead,
    CalendarListResponse,
    CalendarSummary,
    OrganizationListResponse,
    OrganizationSummary,
)

router = APIRouter()


@router.get("/me/organizations", response_model=OrganizationListResponse)
async def my_organizations(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    resolver = PermissionResolver(SqlDirectoryStore(session))
    orgs = await resolver.accessible_organizations(user_id)
    return OrganizationListResponse(data=[OrganizationSummary.model_validate(o) for o in orgs])


@router.get("/me/reservation-calendars", response_model=CalendarListResponse)
async def my_reservation_calendars(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    resolver = PermissionResolver(SqlDirectoryStore(session))
    entries = await resolver.accessible_reservation_calendars(user_id)
    return CalendarListResponse(
        data=[
            CalendarSummary(
                id=entry.calendar.id,
                organization_id=entry.calendar.organization_id,
                name=entry.calendar.name,
                level=entry.decision.level.label,
                can_review=entry.decision.can_review,
            )
            for entry in entries
        ]
    )


@router.get("/permissions/{target_type}/{target_id}", response_model=AccessDecisionRead)
async def get_access(
    target_type: TargetType,
    target_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """The caller's resolved access on a single target."""
    resolver = PermissionResolver(SqlDirectoryStore(session))
    decision = await resolver.decide(user_id, Target(target_type, target_id))
    return AccessDecisionRead(
        target_type=target_type,
        target_id=target_id,
        level=decision.level.label,
        can_review=decision.can_review,
        rule=decision.rule,
    )
