"""
Reservation change notifications.

The booking services return the events a change produced instead of emitting
them; the API layer hands them to ``publish_events`` as a background task.
Delivery is fire-and-forget: a publishing failure is logged and never undoes
or fails the booking.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from booking_core.core.config import get_settings
from booking_core.core.redis import get_redis

log = structlog.get_logger()
settings = get_settings()

RESERVATION_CREATED = "reservation.created"
RESERVATION_UPDATED = "reservation.updated"
RESERVATION_CANCELLED = "reservation.cancelled"


class NotificationEvent(BaseModel):
    type: str
    reservation_id: uuid.UUID
    resource_id: uuid.UUID
    actor_id: uuid.UUID
    recipient_ids: list[uuid.UUID] = Field(default_factory=list)
    payload: dict = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def notification_recipients(
    actor_id: uuid.UUID,
    created_by_id: Optional[uuid.UUID],
    managed_by_id: Optional[uuid.UUID],
) -> list[uuid.UUID]:
    """Reservation creator and resource manager, never the acting user."""
    recipients: list[uuid.UUID] = []
    for candidate in (created_by_id, managed_by_id):
        if candidate is None or candidate == actor_id or candidate in recipients:
            continue
        recipients.append(candidate)
    return recipients


async def publish_events(events: Iterable[NotificationEvent]) -> None:
    """Publish events to the notifications channel; failures are only logged."""
    events = list(events)
    if not events:
        return
    try:
        redis = await get_redis()
        async with redis.pipeline() as pipe:
            for evt in events:
                pipe.publish(settings.notifications_channel, evt.model_dump_json())
            await pipe.execute()
    except (RedisError, OSError) as exc:
        log.error(
            "notifications.publish_failed",
            events=[evt.type for evt in events],
            error=str(exc),
        )
        return
    log.info("notifications.published", count=len(events))
