"""
Booking orchestrator: create, update and cancel reservations.

Every write goes through the same phases, each in its own short transaction:

1. load the target and require EDIT on the resource's type
2. claim the idempotency key (when the caller sent one)
3. lock the resource row, re-check availability and write
4. finalize the idempotency record

The services never publish notifications; the events a change produced are
returned in the BookingOutcome for the caller to hand to the publisher.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from booking_core.core.database import SessionFactory, run_in_transaction
from booking_core.core.errors import InvalidRequest, NotFound
from booking_core.core.notifications import (
    RESERVATION_CANCELLED,
    RESERVATION_CREATED,
    RESERVATION_UPDATED,
    NotificationEvent,
    notification_recipients,
)
from booking_core.models.reservation import Reservation
from booking_core.models.resource import Resource
from booking_core.services.availability import assert_available, evaluate_admission, lock_resource
from booking_core.services.directory import SqlDirectoryStore
from booking_core.services.idempotency import IdempotencyDescriptor, IdempotencyGuard
from booking_core.services.permissions import PermissionResolver, Target

from booking_shared.schemas.common import (
    CAPACITY_CONSUMING_STATUSES,
    RESERVATION_TRANSITIONS,
    AccessLevel,
    ReservationStatus,
)
from booking_shared.schemas.reservations import (
    ReservationCreate,
    ReservationRead,
    ReservationUpdate,
    as_utc,
)

log = structlog.get_logger()

# Identity of unauthenticated public-booking requests. Holds no grants.
PUBLIC_ACTOR_ID = uuid.UUID(int=0)

SCOPE_CREATE = "reservation.create"
SCOPE_UPDATE = "reservation.update"
SCOPE_CANCEL = "reservation.cancel"

# Fields whose change re-runs the admission check on update
ADMISSION_FIELDS = frozenset({"start_time", "end_time", "quantity", "status"})


@dataclass
class BookingOutcome:
    reservation: ReservationRead
    events: list[NotificationEvent] = field(default_factory=list)
    replayed: bool = False


@dataclass(frozen=True)
class _Authorized:
    resource_id: uuid.UUID
    managed_by_id: Optional[uuid.UUID]


def build_event(
    event_type: str,
    actor_id: uuid.UUID,
    reservation: ReservationRead,
    managed_by_id: Optional[uuid.UUID],
    **payload,
) -> NotificationEvent:
    return NotificationEvent(
        type=event_type,
        reservation_id=reservation.id,
        resource_id=reservation.resource_id,
        actor_id=actor_id,
        recipient_ids=notification_recipients(
            actor_id, reservation.created_by_id, managed_by_id
        ),
        payload={
            "status": reservation.status.value,
            "start_time": reservation.start_time.isoformat(),
            "end_time": reservation.end_time.isoformat(),
            "quantity": reservation.quantity,
            **payload,
        },
    )


def _validate_window(start: datetime, end: datetime, quantity: int) -> None:
    if quantity < 1:
        raise InvalidRequest("Quantity must be at least 1", reason="invalid_quantity")
    if as_utc(start) >= as_utc(end):
        raise InvalidRequest("End time must be after start time", reason="invalid_window")


async def admit_reservation(
    session: AsyncSession,
    resource_id: uuid.UUID,
    *,
    start: datetime,
    end: datetime,
    quantity: int,
    status: ReservationStatus,
    created_by_id: Optional[uuid.UUID],
    customer_name: Optional[str] = None,
    customer_email: Optional[str] = None,
    customer_phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> ReservationRead:
    """Lock the resource, run the admission check and insert. Call inside a write transaction."""
    resource = await lock_resource(session, resource_id)
    if status in CAPACITY_CONSUMING_STATUSES:
        await assert_available(session, resource, start, end, quantity)
    else:
        # Waitlisted bookings hold no capacity but must still be well-formed
        precheck = evaluate_admission(resource, start, end, quantity, reserved=0)
        if not precheck.admitted:
            raise precheck.to_error()

    reservation = Reservation(
        resource_id=resource_id,
        start_time=as_utc(start),
        end_time=as_utc(end),
        quantity=quantity,
        status=status.value,
        created_by_id=created_by_id,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone,
        notes=notes,
    )
    session.add(reservation)
    await session.flush()
    return ReservationRead.model_validate(reservation)


class BookingService:
    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        guard: Optional[IdempotencyGuard] = None,
    ):
        self.session_factory = session_factory
        self.guard = guard or IdempotencyGuard(session_factory)

    # -- authorization ---------------------------------------------------

    async def _authorize_resource(
        self, actor_id: uuid.UUID, resource_id: uuid.UUID, required: AccessLevel
    ) -> _Authorized:
        async def _check(session: AsyncSession) -> _Authorized:
            resource = await session.get(Resource, resource_id)
            if resource is None:
                raise NotFound("Resource not found")
            resolver = PermissionResolver(SqlDirectoryStore(session))
            await resolver.require(actor_id, Target.resource_type(resource.resource_type_id), required)
            return _Authorized(resource_id=resource.id, managed_by_id=resource.managed_by_id)

        return await run_in_transaction(self.session_factory, _check)

    async def _authorize_reservation(
        self, actor_id: uuid.UUID, reservation_id: uuid.UUID, required: AccessLevel
    ) -> _Authorized:
        async def _resource_of(session: AsyncSession) -> uuid.UUID:
            reservation = await session.get(Reservation, reservation_id)
            if reservation is None:
                raise NotFound("Reservation not found")
            return reservation.resource_id

        resource_id = await run_in_transaction(self.session_factory, _resource_of)
        return await self._authorize_resource(actor_id, resource_id, required)

    # -- reads -----------------------------------------------------------

    async def get_reservation(
        self, actor_id: uuid.UUID, reservation_id: uuid.UUID
    ) -> ReservationRead:
        await self._authorize_reservation(actor_id, reservation_id, AccessLevel.VIEW)

        async def _load(session: AsyncSession) -> ReservationRead:
            reservation = await session.get(Reservation, reservation_id)
            if reservation is None:
                raise NotFound("Reservation not found")
            return ReservationRead.model_validate(reservation)

        return await run_in_transaction(self.session_factory, _load)

    async def list_reservations(
        self,
        actor_id: uuid.UUID,
        resource_id: uuid.UUID,
        *,
        status: Optional[ReservationStatus] = None,
    ) -> list[ReservationRead]:
        """Reservations on one resource, earliest first. Requires VIEW on its type."""
        await self._authorize_resource(actor_id, resource_id, AccessLevel.VIEW)

        async def _load(session: AsyncSession) -> list[ReservationRead]:
            stmt = (
                select(Reservation)
                .where(Reservation.resource_id == resource_id)
                .order_by(Reservation.start_time, Reservation.id)
            )
            if status is not None:
                stmt = stmt.where(Reservation.status == status.value)
            result = await session.execute(stmt)
            return [ReservationRead.model_validate(r) for r in result.scalars().all()]

        return await run_in_transaction(self.session_factory, _load)

    # -- writes ----------------------------------------------------------

    async def create_reservation(
        self,
        actor_id: uuid.UUID,
        request: ReservationCreate,
        idempotency_key: Optional[str] = None,
    ) -> BookingOutcome:
        authorized = await self._authorize_resource(actor_id, request.resource_id, AccessLevel.EDIT)

        async def _insert(session: AsyncSession) -> ReservationRead:
            return await admit_reservation(
                session,
                request.resource_id,
                start=request.start_time,
                end=request.end_time,
                quantity=request.quantity,
                status=request.status,
                created_by_id=actor_id,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                notes=request.notes,
            )

        async def _operation() -> ReservationRead:
            return await run_in_transaction(self.session_factory, _insert)

        guarded = await self.guard.execute(
            IdempotencyDescriptor(
                key=idempotency_key,
                scope=SCOPE_CREATE,
                user_id=actor_id,
                payload=request.model_dump(mode="json"),
            ),
            _operation,
            ReservationRead,
        )
        if guarded.replayed:
            return BookingOutcome(guarded.value, replayed=True)

        reservation = guarded.value
        log.info(
            "reservation.created",
            reservation_id=str(reservation.id),
            resource_id=str(reservation.resource_id),
            quantity=reservation.quantity,
            status=reservation.status.value,
        )
        return BookingOutcome(
            reservation,
            events=[build_event(RESERVATION_CREATED, actor_id, reservation, authorized.managed_by_id)],
        )

    async def update_reservation(
        self,
        actor_id: uuid.UUID,
        reservation_id: uuid.UUID,
        changes: ReservationUpdate,
        idempotency_key: Optional[str] = None,
    ) -> BookingOutcome:
        authorized = await self._authorize_reservation(actor_id, reservation_id, AccessLevel.EDIT)
        fields = changes.model_dump(exclude_unset=True)
        previous: dict = {}

        async def _apply(session: AsyncSession) -> ReservationRead:
            await lock_resource(session, authorized.resource_id)
            reservation = await session.get(Reservation, reservation_id, populate_existing=True)
            if reservation is None:
                raise NotFound("Reservation not found")

            current = ReservationStatus(reservation.status)
            target_status = fields.get("status") or current
            if target_status != current and target_status not in RESERVATION_TRANSITIONS[current]:
                raise InvalidRequest(
                    f"Cannot change reservation status from '{current.value}' to '{target_status.value}'",
                    current=current.value,
                    requested=target_status.value,
                )
            if not RESERVATION_TRANSITIONS[current] and target_status == current:
                raise InvalidRequest(f"A {current.value} reservation cannot be modified")

            start = fields.get("start_time") or as_utc(reservation.start_time)
            end = fields.get("end_time") or as_utc(reservation.end_time)
            quantity = fields["quantity"] if fields.get("quantity") is not None else reservation.quantity

            # Detail-only edits keep their admission even if the resource changed since
            if ADMISSION_FIELDS & fields.keys():
                if target_status in CAPACITY_CONSUMING_STATUSES:
                    resource = await session.get(Resource, authorized.resource_id)
                    await assert_available(
                        session, resource, start, end, quantity, exclude_reservation_id=reservation.id
                    )
                else:
                    _validate_window(start, end, quantity)

            previous["status"] = current
            reservation.start_time = start
            reservation.end_time = end
            reservation.quantity = quantity
            reservation.status = target_status.value
            for name in ("customer_name", "customer_email", "customer_phone", "notes"):
                if name in fields:
                    setattr(reservation, name, fields[name])
            session.add(reservation)
            await session.flush()
            return ReservationRead.model_validate(reservation)

        async def _operation() -> ReservationRead:
            return await run_in_transaction(self.session_factory, _apply)

        guarded = await self.guard.execute(
            IdempotencyDescriptor(
                key=idempotency_key,
                scope=SCOPE_UPDATE,
                user_id=actor_id,
                payload={
                    "reservation_id": str(reservation_id),
                    "changes": changes.model_dump(mode="json", exclude_unset=True),
                },
            ),
            _operation,
            ReservationRead,
        )
        if guarded.replayed:
            return BookingOutcome(guarded.value, replayed=True)

        reservation = guarded.value
        event_type = RESERVATION_UPDATED
        if reservation.status == ReservationStatus.CANCELLED:
            event_type = RESERVATION_CANCELLED
        log.info(
            "reservation.updated",
            reservation_id=str(reservation.id),
            status=reservation.status.value,
            previous_status=previous["status"].value,
        )
        return BookingOutcome(
            reservation,
            events=[
                build_event(
                    event_type,
                    actor_id,
                    reservation,
                    authorized.managed_by_id,
                    previous_status=previous["status"].value,
                )
            ],
        )

    async def cancel_reservation(
        self,
        actor_id: uuid.UUID,
        reservation_id: uuid.UUID,
        idempotency_key: Optional[str] = None,
    ) -> BookingOutcome:
        authorized = await self._authorize_reservation(actor_id, reservation_id, AccessLevel.EDIT)
        state = {"changed": False}

        async def _cancel(session: AsyncSession) -> ReservationRead:
            await lock_resource(session, authorized.resource_id)
            reservation = await session.get(Reservation, reservation_id, populate_existing=True)
            if reservation is None:
                raise NotFound("Reservation not found")

            current = ReservationStatus(reservation.status)
            if current == ReservationStatus.CANCELLED:
                return ReservationRead.model_validate(reservation)
            if ReservationStatus.CANCELLED not in RESERVATION_TRANSITIONS[current]:
                raise InvalidRequest(f"A {current.value} reservation cannot be cancelled")

            reservation.status = ReservationStatus.CANCELLED.value
            session.add(reservation)
            await session.flush()
            state["changed"] = True
            return ReservationRead.model_validate(reservation)

        async def _operation() -> ReservationRead:
            return await run_in_transaction(self.session_factory, _cancel)

        guarded = await self.guard.execute(
            IdempotencyDescriptor(
                key=idempotency_key,
                scope=SCOPE_CANCEL,
                user_id=actor_id,
                payload={"reservation_id": str(reservation_id)},
            ),
            _operation,
            ReservationRead,
        )
        if guarded.replayed or not state["changed"]:
            return BookingOutcome(guarded.value, replayed=guarded.replayed)

        reservation = guarded.value
        log.info("reservation.cancelled", reservation_id=str(reservation.id))
        return BookingOutcome(
            reservation,
            events=[build_event(RESERVATION_CANCELLED, actor_id, reservation, authorized.managed_by_id)],
        )
