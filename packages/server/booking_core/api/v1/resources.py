"""
Resource endpoints: availability, public booking links, cascade deletion.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from booking_core.core.auth import get_current_user_id
from booking_core.core.database import get_session
from booking_core.models.resource import Resource
from booking_core.services import cascade
from booking_core.services.availability import remaining_capacity
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.permissions import PermissionResolver, Target
from booking_core.services.public_booking import disable_public_booking, regenerate_public_token
from booking_shared.schemas.common import AccessLevel
from booking_shared.schemas.organizations import CascadeDeletePreview, CascadeDeleteResult
from booking_shared.schemas.reservations import AvailabilityRead

router = APIRouter()


@router.get("/{resource_id}/availability", response_model=AvailabilityRead)
async def get_availability(
    resource_id: uuid.UUID,
    start: datetime = Query(...),
    end: datetime = Query(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Capacity still free over [start, end)."""
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(user_id, Target.resource(resource_id), AccessLevel.VIEW)
    resource = await session.get(Resource, resource_id)
    return await remaining_capacity(session, resource, start, end)


@router.post("/{resource_id}/public-token")
async def rotate_public_token(
    resource_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    token = await regenerate_public_token(session, user_id, resource_id)
    await session.commit()
    return {"public_booking_token": token}


@router.delete("/{resource_id}/public-token", status_code=204)
async def remove_public_token(
    resource_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    await disable_public_booking(session, user_id, resource_id)
    await session.commit()


@router.get("/{resource_id}/deletion-preview", response_model=CascadeDeletePreview)
async def preview_delete_resource(
    resource_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    resolver = PermissionResolver(SqlDirectoryStore(session))
    await resolver.require(user_id, Target.resource(resource_id), AccessLevel.ADMIN)
    return await cascade.preview_resource(session, resource_id)


@router.delete("/{resource_id}", response_model=CascadeDeleteResult)
async def delete_resource(
    resource_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await cascade.delete_resource(session, user_id, resource_id)
    await session.commit()
    return result
