"""
Tests for the HTTP adapter: routes, payloads and error mapping.
"""

from datetime import time

import pytest
from httpx import AsyncClient

from reservation_engine.models import BookingStatus

from conftest import TOMORROW


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"


@pytest.mark.asyncio
async def test_create_and_approve_flow(client: AsyncClient, make_branch, make_table):
    branch_id = await make_branch(requires_approval=True)
    table_id = await make_table(branch_id, "1", 4)

    response = await client.post(
        f"/api/v1/branches/{branch_id}/bookings",
        json={
            "customer_id": 7,
            "booking_date": TOMORROW.isoformat(),
            "booking_time": "19:00",
            "party_size": 3,
            "seating_preference": "indoor",
        },
    )
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"
    assert created["table_id"] is None

    response = await client.post(
        f"/api/v1/bookings/{created['id']}/approve",
        json={"actor_id": 77, "actor_role": "staff"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert response.json()["table_id"] == table_id

    response = await client.get(f"/api/v1/bookings/{created['id']}")
    assert response.json()["reference"] == created["reference"]

    response = await client.get(f"/api/v1/branches/{branch_id}/bookings", params={"status": "approved"})
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_policy_violation_is_400(client: AsyncClient, make_branch, make_table):
    branch_id = await make_branch(max_party_size=4)
    await make_table(branch_id, "1", 8)

    response = await client.post(
        f"/api/v1/branches/{branch_id}/bookings",
        json={"customer_id": 1, "booking_date": TOMORROW.isoformat(), "booking_time": "19:00", "party_size": 6},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "POLICY_VIOLATION"
    assert "cannot exceed 4" in body["message"]
    assert body["details"]["party_size"] == 6


@pytest.mark.asyncio
async def test_unknown_booking_is_404(client: AsyncClient):
    response = await client.get("/api/v1/bookings/999")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_invalid_transition_is_409(client: AsyncClient, make_branch, make_booking):
    branch_id = await make_branch()
    booking_id = await make_booking(branch_id, time(19, 0), status=BookingStatus.CANCELLED)

    response = await client.post(f"/api/v1/bookings/{booking_id}/complete", json={"actor_id": 77})

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATE_TRANSITION"
    assert response.json()["details"]["status"] == "cancelled"


@pytest.mark.asyncio
async def test_no_availability_is_409(client: AsyncClient, make_branch, make_table):
    branch_id = await make_branch(waitlist_enabled=False)
    await make_table(branch_id, "1", 2)
    payload = {"booking_date": TOMORROW.isoformat(), "booking_time": "19:00", "party_size": 2}

    first = await client.post(f"/api/v1/branches/{branch_id}/bookings", json={"customer_id": 1, **payload})
    second = await client.post(f"/api/v1/branches/{branch_id}/bookings", json={"customer_id": 2, **payload})

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "NO_AVAILABILITY"
    assert second.json()["details"]["next_available_time"] == "20:30"


@pytest.mark.asyncio
async def test_availability_endpoints(client: AsyncClient, make_branch, make_table):
    branch_id = await make_branch()
    await make_table(branch_id, "1", 4)

    check = await client.get(
        f"/api/v1/branches/{branch_id}/availability",
        params={"date": TOMORROW.isoformat(), "time": "19:00", "party_size": 2},
    )
    assert check.status_code == 200
    assert check.json()["available"] is True
    assert [t["table_number"] for t in check.json()["candidate_tables"]] == ["1"]

    rejected = await client.get(
        f"/api/v1/branches/{branch_id}/availability",
        params={"date": TOMORROW.isoformat(), "time": "23:30", "party_size": 2},
    )
    assert rejected.status_code == 200
    assert rejected.json()["available"] is False
    assert rejected.json()["reason_code"] == "POLICY_VIOLATION"

    calendar = await client.get(
        f"/api/v1/branches/{branch_id}/availability/range",
        params={"start_date": TOMORROW.isoformat(), "end_date": TOMORROW.isoformat(), "party_size": 2},
    )
    assert calendar.status_code == 200
    assert len(calendar.json()["days"]) == 1

    next_slot = await client.get(
        f"/api/v1/branches/{branch_id}/availability/next",
        params={"date": TOMORROW.isoformat(), "from_time": "12:00", "party_size": 2},
    )
    assert next_slot.json()["next_available_time"] == "12:15:00"


@pytest.mark.asyncio
async def test_waitlist_endpoints(client: AsyncClient, make_branch, make_table, make_booking):
    branch_id = await make_branch()
    table_id = await make_table(branch_id, "1", 4)
    await make_booking(branch_id, time(19, 0), table_id=table_id)
    first = await make_booking(branch_id, time(19, 0), status=BookingStatus.WAITLISTED, waitlist_position=1)
    second = await make_booking(branch_id, time(19, 0), status=BookingStatus.WAITLISTED, waitlist_position=2)

    moved = await client.post(f"/api/v1/bookings/{second}/waitlist/move", json={"direction": "up"})
    assert moved.status_code == 200
    assert moved.json()["waitlist_position"] == 1

    listing = await client.get(f"/api/v1/branches/{branch_id}/waitlist", params={"date": TOMORROW.isoformat()})
    assert [b["id"] for b in listing.json()] == [second, first]

    estimates = await client.post(
        f"/api/v1/branches/{branch_id}/waitlist/estimates", json={"date": TOMORROW.isoformat()}
    )
    assert estimates.json()["updated"] == 2

    process = await client.post(
        f"/api/v1/branches/{branch_id}/waitlist/process",
        json={"date": TOMORROW.isoformat(), "time": "19:00"},
    )
    assert process.status_code == 409
    assert process.json()["code"] == "NO_AVAILABILITY"
