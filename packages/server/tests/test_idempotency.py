"""
Idempotency guard tests.

Tests cover:
- Execution without a key, key length limit
- Exactly-once execution and replay of the stored result
- Payload conflicts, in-flight duplicates, retry after failure
- Expiry, cancellation, and purging
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import BaseModel
from sqlmodel import select

from booking_core.core.errors import (
    AlreadyInProgress,
    CapacityExceeded,
    IdempotencyConflict,
    InvalidRequest,
)
from booking_core.models import IdempotencyRecord
from booking_core.services.idempotency import (
    IdempotencyDescriptor,
    IdempotencyGuard,
    fingerprint,
    purge_expired,
)


class Echo(BaseModel):
    value: int


class Counter:
    def __init__(self):
        self.calls = 0

    async def __call__(self) -> Echo:
        self.calls += 1
        return Echo(value=self.calls)


@pytest.fixture
def guard(session_factory):
    return IdempotencyGuard(session_factory)


def _descriptor(key="key-1", payload=None, user_id=None, scope="test.op"):
    return IdempotencyDescriptor(
        key=key,
        scope=scope,
        user_id=user_id or uuid.UUID(int=1),
        payload=payload if payload is not None else {"a": 1},
    )


async def _records(session_factory) -> list[IdempotencyRecord]:
    async with session_factory() as session:
        result = await session.execute(select(IdempotencyRecord))
        return list(result.scalars().all())


def test_fingerprint_is_key_order_independent():
    assert fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})
    assert fingerprint({"a": 1}) != fingerprint({"a": 2})
    assert fingerprint(Echo(value=1)) == fingerprint({"value": 1})


async def test_no_key_runs_every_time(guard, session_factory):
    op = Counter()
    for key in (None, "", "   "):
        result = await guard.execute(_descriptor(key=key), op, Echo)
        assert not result.replayed
    assert op.calls == 3
    assert await _records(session_factory) == []


async def test_key_too_long(guard):
    with pytest.raises(InvalidRequest):
        await guard.execute(_descriptor(key="k" * 129), Counter(), Echo)


async def test_exactly_once_and_replay(guard, session_factory):
    op = Counter()
    first = await guard.execute(_descriptor(), op, Echo)
    second = await guard.execute(_descriptor(), op, Echo)

    assert op.calls == 1
    assert not first.replayed
    assert second.replayed
    assert second.value == first.value

    [record] = await _records(session_factory)
    assert record.status == "completed"
    assert record.stored_result == {"value": 1}


async def test_keys_are_scoped_per_user_and_scope(guard):
    op = Counter()
    await guard.execute(_descriptor(user_id=uuid.UUID(int=1)), op, Echo)
    await guard.execute(_descriptor(user_id=uuid.UUID(int=2)), op, Echo)
    await guard.execute(_descriptor(scope="other.op"), op, Echo)
    assert op.calls == 3


async def test_payload_mismatch_conflicts(guard):
    await guard.execute(_descriptor(payload={"a": 1}), Counter(), Echo)
    with pytest.raises(IdempotencyConflict) as excinfo:
        await guard.execute(_descriptor(payload={"a": 2}), Counter(), Echo)
    assert excinfo.value.details == {"key": "key-1"}


async def test_in_flight_duplicate_is_rejected(guard):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow() -> Echo:
        started.set()
        await release.wait()
        return Echo(value=7)

    first = asyncio.create_task(guard.execute(_descriptor(), slow, Echo))
    await started.wait()

    with pytest.raises(AlreadyInProgress):
        await guard.execute(_descriptor(), Counter(), Echo)

    release.set()
    assert (await first).value.value == 7


async def test_failure_is_recorded_and_retried(guard, session_factory):
    async def failing() -> Echo:
        raise CapacityExceeded("Only 0 of 1 units are available for this time period")

    with pytest.raises(CapacityExceeded):
        await guard.execute(_descriptor(), failing, Echo)

    [record] = await _records(session_factory)
    assert record.status == "failed"
    assert record.error_code == "CAPACITY_EXCEEDED"

    op = Counter()
    result = await guard.execute(_descriptor(), op, Echo)
    assert op.calls == 1
    assert not result.replayed
    [record] = await _records(session_factory)
    assert record.status == "completed"


async def test_expired_record_is_replaced(session_factory):
    guard = IdempotencyGuard(session_factory, ttl_seconds=60)
    op = Counter()
    await guard.execute(_descriptor(), op, Echo)

    async with session_factory() as session:
        [record] = (await session.execute(select(IdempotencyRecord))).scalars().all()
        record.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        session.add(record)
        await session.commit()

    # Even a different payload is accepted once the old record expired
    result = await guard.execute(_descriptor(payload={"a": 2}), op, Echo)
    assert not result.replayed
    assert op.calls == 2


async def _wait_for_status(session_factory, status: str) -> IdempotencyRecord:
    for _ in range(200):
        records = await _records(session_factory)
        if records and records[0].status == status:
            return records[0]
        await asyncio.sleep(0.01)
    raise AssertionError(f"record never reached {status!r}")


async def test_cancelled_caller_does_not_abandon_the_write(guard, session_factory):
    started, release = asyncio.Event(), asyncio.Event()
    writes = []

    async def slow_write() -> Echo:
        started.set()
        writes.append("inserted")
        await release.wait()
        return Echo(value=len(writes))

    task = asyncio.create_task(guard.execute(_descriptor(), slow_write, Echo))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # Still running: a retry must not start a second write
    with pytest.raises(AlreadyInProgress):
        await guard.execute(_descriptor(), slow_write, Echo)

    release.set()
    await _wait_for_status(session_factory, "completed")

    result = await guard.execute(_descriptor(), slow_write, Echo)
    assert result.replayed
    assert result.value == Echo(value=1)
    assert writes == ["inserted"]


async def test_operation_cancelled_before_finishing_releases_the_key(guard, session_factory):
    async def interrupted() -> Echo:
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await guard.execute(_descriptor(), interrupted, Echo)

    assert await _records(session_factory) == []
    op = Counter()
    result = await guard.execute(_descriptor(), op, Echo)
    assert op.calls == 1
    assert not result.replayed


async def test_zero_ttl_is_honoured(session_factory):
    guard = IdempotencyGuard(session_factory, ttl_seconds=0)
    op = Counter()
    await guard.execute(_descriptor(), op, Echo)
    result = await guard.execute(_descriptor(), op, Echo)
    assert not result.replayed
    assert op.calls == 2


async def test_purge_expired(guard, session_factory):
    await guard.execute(_descriptor(key="old"), Counter(), Echo)
    await guard.execute(_descriptor(key="new"), Counter(), Echo)

    later = datetime.now(timezone.utc) + timedelta(hours=2)
    async with session_factory() as session:
        assert await purge_expired(session, now=datetime.now(timezone.utc)) == 0
        assert await purge_expired(session, now=later) == 2
        await session.commit()
    assert await _records(session_factory) == []
