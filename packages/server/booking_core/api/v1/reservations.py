"""
Reservation endpoints: create, read, update, cancel.

Writes accept an ``Idempotency-Key`` header; a replayed response carries
``Idempotent-Replayed: true``. Notification events are published after the
response through background tasks.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Response

from booking_core.api.v1.deps import get_booking_service
from booking_core.core.auth import get_current_user_id
from booking_core.core.notifications import publish_events
from booking_core.services.reservations import BookingOutcome, BookingService
from booking_shared.schemas.common import ReservationStatus
from booking_shared.schemas.reservations import (
    ReservationCreate,
    ReservationRead,
    ReservationUpdate,
)

router = APIRouter()

REPLAYED_HEADER = "Idempotent-Replayed"


def _deliver(outcome: BookingOutcome, response: Response, background: BackgroundTasks) -> ReservationRead:
    if outcome.replayed:
        response.headers[REPLAYED_HEADER] = "true"
    if outcome.events:
        background.add_task(publish_events, outcome.events)
    return outcome.reservation


@router.post("", response_model=ReservationRead, status_code=201)
async def create_reservation(
    body: ReservationCreate,
    response: Response,
    background: BackgroundTasks,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Create a reservation; requires edit access on the resource's type."""
    outcome = await service.create_reservation(user_id, body, idempotency_key)
    return _deliver(outcome, response, background)


@router.get("", response_model=list[ReservationRead])
async def list_reservations(
    resource_id: uuid.UUID = Query(...),
    status: Optional[ReservationStatus] = Query(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Reservations on a resource, earliest first."""
    return await service.list_reservations(user_id, resource_id, status=status)


@router.get("/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_reservation(user_id, reservation_id)


@router.patch("/{reservation_id}", response_model=ReservationRead)
async def update_reservation(
    reservation_id: uuid.UUID,
    body: ReservationUpdate,
    response: Response,
    background: BackgroundTasks,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    outcome = await service.update_reservation(user_id, reservation_id, body, idempotency_key)
    return _deliver(outcome, response, background)


@router.post("/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    reservation_id: uuid.UUID,
    response: Response,
    background: BackgroundTasks,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a reservation. Cancelling twice is a no-op."""
    outcome = await service.cancel_reservation(user_id, reservation_id, idempotency_key)
    return _deliver(outcome, response, background)
