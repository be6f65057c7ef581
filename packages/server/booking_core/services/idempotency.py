"""
Idempotency guard: at-most-once execution of a keyed write.

A request carrying a key claims an IdempotencyRecord (unique on key, scope
and user) before running its operation, then finalizes it:

    no record / expired       -> claim IN_PROGRESS, run, store COMPLETED
    different payload         -> IdempotencyConflict
    COMPLETED, same payload   -> replay the stored result, operation not run
    IN_PROGRESS               -> AlreadyInProgress (never waits)
    FAILED, same payload      -> reclaim and run again

Claiming and finalizing each run in their own short transaction, so the
record is visible to concurrent duplicates while the operation runs. A
caller cancelled mid-operation does not abandon it: the operation finishes
and its record is finalized in the background, so a retry replays instead of
running the write twice.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.config import get_settings
from booking_core.core.database import SessionFactory, run_in_transaction
from booking_core.core.errors import AlreadyInProgress, IdempotencyConflict, InvalidRequest
from booking_core.models.idempotency import IdempotencyRecord

from booking_shared.schemas.common import IdempotencyStatus
from booking_shared.schemas.reservations import as_utc

log = structlog.get_logger()
settings = get_settings()

ResultT = TypeVar("ResultT", bound=BaseModel)

# Strong references to operations still settling after their caller went away
_settling: set[asyncio.Future] = set()


@dataclass(frozen=True)
class IdempotencyDescriptor:
    key: Optional[str]
    scope: str
    user_id: uuid.UUID
    payload: Any = None


@dataclass(frozen=True)
class GuardedResult(Generic[ResultT]):
    value: ResultT
    replayed: bool = False


@dataclass(frozen=True)
class _Claim:
    record_id: Optional[uuid.UUID] = None
    stored_result: Optional[dict] = None


def fingerprint(payload: Any) -> str:
    """SHA-256 over the canonical JSON form of the request payload."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


class IdempotencyGuard:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        ttl_seconds: Optional[int] = None,
        max_key_length: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(
            seconds=settings.idempotency_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.max_key_length = (
            settings.idempotency_key_max_length if max_key_length is None else max_key_length
        )

    async def execute(
        self,
        descriptor: IdempotencyDescriptor,
        operation: Callable[[], Awaitable[ResultT]],
        result_model: type[ResultT],
    ) -> GuardedResult[ResultT]:
        key = descriptor.key.strip() if descriptor.key else ""
        if not key:
            return GuardedResult(await operation())
        if len(key) > self.max_key_length:
            raise InvalidRequest(
                f"Idempotency key must be at most {self.max_key_length} characters",
                max_length=self.max_key_length,
            )

        payload_fingerprint = fingerprint(descriptor.payload)

        async def _claim(session: AsyncSession) -> _Claim:
            return await self._claim(session, key, descriptor, payload_fingerprint)

        claim = await run_in_transaction(self.session_factory, _claim)

        if claim.record_id is None:
            log.info("idempotency.replayed", key=key, scope=descriptor.scope)
            return GuardedResult(result_model.model_validate(claim.stored_result), replayed=True)

        # Once started, the operation and its finalization outlive a cancelled caller
        settling = asyncio.ensure_future(self._run_and_settle(claim.record_id, operation))
        _settling.add(settling)
        settling.add_done_callback(_settling.discard)
        value = await asyncio.shield(settling)
        return GuardedResult(value)

    async def _run_and_settle(
        self,
        record_id: uuid.UUID,
        operation: Callable[[], Awaitable[ResultT]],
    ) -> ResultT:
        try:
            value = await operation()
        except asyncio.CancelledError:
            # Only reached when the operation itself was cancelled before finishing
            await asyncio.shield(self._release(record_id))
            raise
        except Exception as exc:
            await asyncio.shield(self._mark_failed(record_id, exc))
            raise

        await self._complete(record_id, value.model_dump(mode="json"))
        return value

    async def _claim(
        self,
        session: AsyncSession,
        key: str,
        descriptor: IdempotencyDescriptor,
        payload_fingerprint: str,
    ) -> _Claim:
        now = datetime.now(timezone.utc)
        result = await session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.scope == descriptor.scope,
                IdempotencyRecord.user_id == descriptor.user_id,
            )
        )
        record = result.scalar_one_or_none()

        if record is not None and as_utc(record.expires_at) <= now:
            await session.delete(record)
            await session.flush()
            record = None

        if record is not None:
            if record.payload_fingerprint != payload_fingerprint:
                log.info("idempotency.conflict", key=key, scope=descriptor.scope)
                raise IdempotencyConflict(key=key)
            if record.status == IdempotencyStatus.COMPLETED.value:
                return _Claim(stored_result=record.stored_result)
            if record.status == IdempotencyStatus.IN_PROGRESS.value:
                raise AlreadyInProgress(key=key)

            # FAILED: retry under the same record
            record.status = IdempotencyStatus.IN_PROGRESS.value
            record.error_code = None
            record.error_message = None
            record.expires_at = now + self.ttl
            session.add(record)
            log.info("idempotency.retrying_failed", key=key, scope=descriptor.scope)
            return _Claim(record_id=record.id)

        record = IdempotencyRecord(
            key=key,
            scope=descriptor.scope,
            user_id=descriptor.user_id,
            payload_fingerprint=payload_fingerprint,
            status=IdempotencyStatus.IN_PROGRESS.value,
            created_at=now,
            expires_at=now + self.ttl,
        )
        session.add(record)
        try:
            await session.flush()
        except IntegrityError:
            # A concurrent duplicate claimed the key first
            raise AlreadyInProgress(key=key)
        return _Claim(record_id=record.id)

    async def _complete(self, record_id: uuid.UUID, stored_result: dict) -> None:
        async def _finalize(session: AsyncSession) -> None:
            record = await session.get(IdempotencyRecord, record_id)
            if record is None:
                return
            record.status = IdempotencyStatus.COMPLETED.value
            record.stored_result = stored_result
            session.add(record)

        await run_in_transaction(self.session_factory, _finalize)

    async def _mark_failed(self, record_id: uuid.UUID, exc: Exception) -> None:
        code = getattr(exc, "code", None) or type(exc).__name__
        message = str(getattr(exc, "message", None) or exc)[:500]

        async def _finalize(session: AsyncSession) -> None:
            record = await session.get(IdempotencyRecord, record_id)
            if record is None:
                return
            record.status = IdempotencyStatus.FAILED.value
            record.error_code = code
            record.error_message = message
            session.add(record)

        await run_in_transaction(self.session_factory, _finalize)
        log.info("idempotency.failed", record_id=str(record_id), error_code=code)

    async def _release(self, record_id: uuid.UUID) -> None:
        async def _drop(session: AsyncSession) -> None:
            await session.execute(
                delete(IdempotencyRecord).where(IdempotencyRecord.id == record_id)
            )

        await run_in_transaction(self.session_factory, _drop)
        log.info("idempotency.released", record_id=str(record_id))


async def purge_expired(
    session: AsyncSession,
    *,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> int:
    """Delete records past their retention window. Returns the number removed."""
    now = now or datetime.now(timezone.utc)
    stmt = select(IdempotencyRecord.id).where(IdempotencyRecord.expires_at <= now)
    if limit:
        stmt = stmt.limit(limit)
    expired_ids = list((await session.execute(stmt)).scalars().all())
    if not expired_ids:
        return 0
    await session.execute(
        delete(IdempotencyRecord).where(IdempotencyRecord.id.in_(expired_ids))
    )
    return len(expired_ids)
