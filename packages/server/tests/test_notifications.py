"""
Notification, authentication and background-worker tests.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from redis.exceptions import ConnectionError as RedisConnectionError

from booking_core.core import auth, notifications
from booking_core.core.notifications import (
    RESERVATION_CREATED,
    NotificationEvent,
    notification_recipients,
    publish_events,
)
from booking_core.models import IdempotencyRecord
from booking_core.tasks import idempotency_reaper
from booking_shared.schemas.common import IdempotencyStatus


class FakePipeline:
    def __init__(self, sink, fail=False):
        self.sink = sink
        self.fail = fail
        self.buffered = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def publish(self, channel, message):
        self.buffered.append((channel, message))
        return self

    async def execute(self):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.sink.extend(self.buffered)
        return [1] * len(self.buffered)


class FakeRedis:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail

    def pipeline(self):
        return FakePipeline(self.published, self.fail)


def _event() -> NotificationEvent:
    return NotificationEvent(
        type=RESERVATION_CREATED,
        reservation_id=uuid.uuid4(),
        resource_id=uuid.uuid4(),
        actor_id=uuid.uuid4(),
    )


def test_recipients_skip_actor_and_duplicates():
    actor, creator, manager = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    assert notification_recipients(actor, creator, manager) == [creator, manager]
    assert notification_recipients(actor, actor, manager) == [manager]
    assert notification_recipients(actor, manager, manager) == [manager]
    assert notification_recipients(actor, None, None) == []


async def test_publish_events(monkeypatch):
    fake = FakeRedis()

    async def get_fake():
        return fake

    monkeypatch.setattr(notifications, "get_redis", get_fake)
    event = _event()
    await publish_events([event])

    assert len(fake.published) == 1
    channel, message = fake.published[0]
    assert channel == notifications.settings.notifications_channel
    assert NotificationEvent.model_validate_json(message).reservation_id == event.reservation_id


async def test_publish_failure_is_swallowed(monkeypatch):
    fake = FakeRedis(fail=True)

    async def get_fake():
        return fake

    monkeypatch.setattr(notifications, "get_redis", get_fake)
    await publish_events([_event()])
    assert fake.published == []


def test_jwt_round_trip():
    user_id = uuid.uuid4()
    token, jti = auth.create_jwt(user_id)
    payload = auth.decode_jwt(token)
    assert payload["sub"] == str(user_id)
    assert payload["jti"] == jti
    assert auth._user_id_from_token(token) == user_id


def test_expired_and_garbage_tokens_rejected():
    token, _ = auth.create_jwt(uuid.uuid4(), expires_delta=timedelta(seconds=-5))
    for candidate in (token, "garbage"):
        with pytest.raises(HTTPException) as excinfo:
            auth._user_id_from_token(candidate)
        assert excinfo.value.status_code == 401


async def test_reaper_purges_in_batches(monkeypatch, session_factory):
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    async with session_factory() as session:
        for i in range(5):
            session.add(
                IdempotencyRecord(
                    key=f"k-{i}",
                    scope="reservation.create",
                    user_id=uuid.uuid4(),
                    payload_fingerprint="0" * 64,
                    status=IdempotencyStatus.COMPLETED.value,
                    expires_at=past,
                )
            )
        await session.commit()

    @asynccontextmanager
    async def context():
        async with session_factory() as session:
            yield session
            await session.commit()

    monkeypatch.setattr(idempotency_reaper, "get_session_context", context)
    monkeypatch.setattr(idempotency_reaper.settings, "idempotency_reaper_batch_size", 2)

    assert await idempotency_reaper.purge_expired_idempotency_records({}) == 5
    assert await idempotency_reaper.purge_expired_idempotency_records({}) == 0
