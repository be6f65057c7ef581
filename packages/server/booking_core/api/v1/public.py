"""
Public booking endpoints: no authentication, keyed by the resource's token.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from booking_core.api.v1.reservations import REPLAYED_HEADER
from booking_core.core.database import get_session, get_session_factory
from booking_core.core.notifications import publish_events
from booking_core.services import public_booking
from booking_shared.schemas.reservations import (
    AvailabilityRead,
    PublicBookingConfirmation,
    PublicBookingCreate,
    PublicResourceRead,
)

router = APIRouter()


@router.get("/{token}", response_model=PublicResourceRead)
async def get_booking_page(token: str, session: AsyncSession = Depends(get_session)):
    return await public_booking.get_public_resource(session, token)


@router.get("/{token}/availability", response_model=AvailabilityRead)
async def get_public_availability(
    token: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    session: AsyncSession = Depends(get_session),
):
    return await public_booking.public_availability(session, token, start, end)


@router.post("/{token}", response_model=PublicBookingConfirmation, status_code=201)
async def create_booking(
    token: str,
    body: PublicBookingCreate,
    response: Response,
    background: BackgroundTasks,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    confirmation, outcome = await public_booking.create_public_booking(
        session_factory, token, body, idempotency_key
    )
    if outcome.replayed:
        response.headers[REPLAYED_HEADER] = "true"
    if outcome.events:
        background.add_task(publish_events, outcome.events)
    return confirmation
