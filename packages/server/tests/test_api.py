"""
HTTP surface tests: routing, authentication, error envelopes, idempotent replay.
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from booking_core.api.v1 import public as public_routes
from booking_core.api.v1 import reservations as reservation_routes
from booking_core.core.database import get_session, get_session_factory
from booking_core.main import app

from conftest import at


@pytest.fixture
def published(monkeypatch):
    batches = []

    async def record(events):
        batches.append(list(events))

    monkeypatch.setattr(reservation_routes, "publish_events", record)
    monkeypatch.setattr(public_routes, "publish_events", record)
    return batches


@pytest.fixture
async def client(session_factory, published):
    async def override_session():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _auth(user) -> dict:
    return {"Authorization": f"Bearer {user.id}"}


def _reservation_body(resource, hour=10, quantity=1) -> dict:
    return {
        "resource_id": str(resource.id),
        "start_time": at(hour).isoformat(),
        "end_time": at(hour + 1).isoformat(),
        "quantity": quantity,
    }


async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_ready_check_reports_dependencies(client: AsyncClient):
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("ready", "degraded")
    assert set(data["checks"]) == {"database", "redis"}


async def test_api_root(client: AsyncClient):
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()
    assert data["api"] == "v1"
    assert "/reservations" in data["endpoints"]


async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


async def test_authentication_required(client: AsyncClient, bookable):
    resource = bookable[3]
    response = await client.post("/api/v1/reservations", json=_reservation_body(resource))
    assert response.status_code == 401

    response = await client.post(
        "/api/v1/reservations",
        json=_reservation_body(resource),
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


async def test_create_and_replay(client: AsyncClient, bookable, published):
    admin, _, _, resource = bookable
    headers = {**_auth(admin), "Idempotency-Key": "create-1"}

    first = await client.post("/api/v1/reservations", json=_reservation_body(resource), headers=headers)
    assert first.status_code == 201
    assert "Idempotent-Replayed" not in first.headers
    assert first.json()["status"] == "pending"

    second = await client.post("/api/v1/reservations", json=_reservation_body(resource), headers=headers)
    assert second.status_code == 201
    assert second.headers["Idempotent-Replayed"] == "true"
    assert second.json()["id"] == first.json()["id"]
    assert len(published) == 1

    fetched = await client.get(f"/api/v1/reservations/{first.json()['id']}", headers=_auth(admin))
    assert fetched.status_code == 200
    assert fetched.json()["quantity"] == 1


async def test_key_reuse_with_different_payload(client: AsyncClient, bookable):
    admin, _, _, resource = bookable
    headers = {**_auth(admin), "Idempotency-Key": "create-2"}

    await client.post("/api/v1/reservations", json=_reservation_body(resource), headers=headers)
    response = await client.post(
        "/api/v1/reservations", json=_reservation_body(resource, quantity=2), headers=headers
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "IDEMPOTENCY_CONFLICT"


async def test_capacity_error_envelope(client: AsyncClient, bookable):
    admin, _, _, resource = bookable
    response = await client.post(
        "/api/v1/reservations", json=_reservation_body(resource, quantity=3), headers=_auth(admin)
    )
    assert response.status_code == 201

    response = await client.post(
        "/api/v1/reservations", json=_reservation_body(resource), headers=_auth(admin)
    )
    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "CAPACITY_EXCEEDED"
    assert error["status"] == 409
    assert error["message"] == "Only 0 of 3 units are available for this time period"


async def test_member_is_forbidden(client: AsyncClient, world, bookable):
    _, org, _, resource = bookable
    member = await world.user("member")
    await world.member(org, member)

    response = await client.post(
        "/api/v1/reservations", json=_reservation_body(resource), headers=_auth(member)
    )
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["code"] == "FORBIDDEN"
    assert error["details"] == {"required": "edit", "actual": "view"}


async def test_cancel_then_cancel_again(client: AsyncClient, bookable, published):
    admin, _, _, resource = bookable
    created = await client.post(
        "/api/v1/reservations", json=_reservation_body(resource), headers=_auth(admin)
    )
    reservation_id = created.json()["id"]

    for _ in range(2):
        response = await client.post(
            f"/api/v1/reservations/{reservation_id}/cancel", headers=_auth(admin)
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
    assert len(published) == 2


async def test_availability_endpoint(client: AsyncClient, world, bookable):
    admin, _, _, resource = bookable
    await world.reservation(resource, at(10), at(11), quantity=2)

    response = await client.get(
        f"/api/v1/resources/{resource.id}/availability",
        params={"start": at(10, 30).isoformat(), "end": at(12).isoformat()},
        headers=_auth(admin),
    )
    assert response.status_code == 200
    assert response.json()["remaining"] == 1


async def test_access_decision_endpoint(client: AsyncClient, bookable):
    admin, _, _, resource = bookable
    response = await client.get(f"/api/v1/permissions/resource/{resource.id}", headers=_auth(admin))
    assert response.status_code == 200
    assert response.json()["level"] == "admin"
    assert response.json()["rule"] == "organization_admin"

    response = await client.get(f"/api/v1/permissions/resource/{uuid.uuid4()}", headers=_auth(admin))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


async def test_my_organizations(client: AsyncClient, bookable):
    admin, org, _, _ = bookable
    response = await client.get("/api/v1/me/organizations", headers=_auth(admin))
    assert response.status_code == 200
    assert [o["id"] for o in response.json()["data"]] == [str(org.id)]


async def test_public_booking_flow(client: AsyncClient, world, bookable, published):
    _, _, rooms, _ = bookable
    await world.resource(rooms, capacity=1, name="Studio", token="studio-token")

    page = await client.get("/api/v1/public/booking/studio-token")
    assert page.status_code == 200
    assert page.json()["name"] == "Studio"

    body = {
        "start_time": at(14).isoformat(),
        "end_time": at(15).isoformat(),
        "customer_name": "Dana",
        "customer_email": "dana@example.com",
    }
    booked = await client.post("/api/v1/public/booking/studio-token", json=body)
    assert booked.status_code == 201
    assert booked.json()["status"] == "confirmed"
    assert len(published) == 1

    full = await client.post("/api/v1/public/booking/studio-token", json=body)
    assert full.status_code == 409

    missing = await client.get("/api/v1/public/booking/unknown-token")
    assert missing.status_code == 404


async def test_list_reservations_for_resource(client: AsyncClient, world, bookable):
    admin, _, _, resource = bookable
    await world.reservation(resource, at(13), at(14))
    await world.reservation(resource, at(9), at(10), status="cancelled")

    response = await client.get(
        "/api/v1/reservations", params={"resource_id": str(resource.id)}, headers=_auth(admin)
    )
    assert response.status_code == 200
    assert [r["status"] for r in response.json()] == ["cancelled", "confirmed"]

    response = await client.get(
        "/api/v1/reservations",
        params={"resource_id": str(resource.id), "status": "confirmed"},
        headers=_auth(admin),
    )
    assert len(response.json()) == 1

    response = await client.get("/api/v1/reservations", headers=_auth(admin))
    assert response.status_code == 422


async def test_granular_denial_names_the_granular_rule(client: AsyncClient, world):
    org = await world.org(granular_calendars=True)
    calendar = await world.calendar(org)
    member = await world.user("member")
    await world.member(org, member)

    response = await client.get(f"/api/v1/permissions/calendar/{calendar.id}", headers=_auth(member))
    assert response.status_code == 200
    assert response.json()["level"] == "none"
    assert response.json()["rule"] == "granular_grant"
