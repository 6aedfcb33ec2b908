"""Bookings Routes — tests for create, read and cancel over HTTP.

Tests cover:
    - Creation returns 201 with the frozen fee breakdown, camelCase
    - Actor headers drive authorization (anonymous, buyer, admin, bad role)
    - Cancel writes the facility-owner notification
    - Rate-limited routes carry X-RateLimit-* headers and answer 429 when exhausted
"""

from uuid import uuid4

import pytest
from sqlalchemy import select

from desynth.api.dependencies import get_rate_limiter
from desynth.infrastructure.rate_limiter import InMemorySlidingWindowLimiter
from desynth.main import app
from desynth.models.notification import Notification

BUYER_HEADERS = {"X-Actor-Id": "buyer-1", "X-Actor-Role": "buyer"}

BOOKING_BODY = {
    "slotId": "slot-42",
    "facilityOwnerId": "owner-1",
    "baseAmount": "10000",
    "vertical": "cdmo",
    "facilityType": "bioprocessing",
    "paymentMethod": "crypto",
    "isPriority": True,
    "requiresInsurance": True,
}


async def _create(client, **overrides) -> dict:
    response = await client.post(
        "/api/v1/bookings", json={**BOOKING_BODY, **overrides}, headers=BUYER_HEADERS,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_booking_returns_fee_breakdown(client):
    response = await client.post(
        "/api/v1/bookings", json=BOOKING_BODY, headers=BUYER_HEADERS,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "reserved"
    assert data["buyerId"] == "buyer-1"
    assert data["totalAmount"] == "10397.50"
    assert data["feeBreakdown"]["priorityMatchingFee"] == "75.00"
    assert data["feeBreakdown"]["insurancePoolFee"] == "7.50"
    assert response.headers["X-RateLimit-Remaining"] == "99"
    assert "X-RateLimit-Reset" in response.headers


@pytest.mark.asyncio
async def test_anonymous_create_forbidden(client):
    response = await client.post("/api/v1/bookings", json=BOOKING_BODY)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_unknown_role_header_rejected(client):
    response = await client.post(
        "/api/v1/bookings", json=BOOKING_BODY,
        headers={"X-Actor-Id": "u-1", "X-Actor-Role": "superuser"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["details"] == {"field": "X-Actor-Role"}


@pytest.mark.asyncio
async def test_unknown_payment_method_rejected_at_boundary(client):
    response = await client.post(
        "/api/v1/bookings", json={**BOOKING_BODY, "paymentMethod": "paypal"},
        headers=BUYER_HEADERS,
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert any("paymentMethod" in d["field"] for d in error["details"])


@pytest.mark.asyncio
async def test_non_numeric_amount_names_field(client):
    response = await client.post(
        "/api/v1/bookings", json={**BOOKING_BODY, "baseAmount": "ten"},
        headers=BUYER_HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["error"]["details"] == {"field": "baseAmount"}


@pytest.mark.asyncio
async def test_get_booking(client):
    created = await _create(client)
    response = await client.get(f"/api/v1/bookings/{created['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["slotId"] == "slot-42"


@pytest.mark.asyncio
async def test_get_booking_errors(client):
    malformed = await client.get("/api/v1/bookings/not-a-uuid")
    missing = await client.get(f"/api/v1/bookings/{uuid4()}")
    assert malformed.status_code == 400
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
async def test_cancel_notifies_facility_owner(client, test_session_factory):
    created = await _create(client)

    response = await client.post(
        f"/api/v1/bookings/{created['id']}/cancel",
        json={"reason": "Cell line not ready"}, headers=BUYER_HEADERS,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "cancelled"
    assert data["cancellationReason"] == "Cell line not ready"
    async with test_session_factory() as db:
        rows = (await db.execute(select(Notification))).scalars().all()
    assert [(n.user_id, n.type, n.urgent) for n in rows] == [
        ("owner-1", "booking_cancelled", True),
    ]


@pytest.mark.asyncio
async def test_cancel_without_body_by_admin(client):
    created = await _create(client)
    response = await client.post(
        f"/api/v1/bookings/{created['id']}/cancel",
        headers={"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["cancellationReason"] is None


@pytest.mark.asyncio
async def test_cancel_by_other_buyer_forbidden(client):
    created = await _create(client)
    response = await client.post(
        f"/api/v1/bookings/{created['id']}/cancel",
        headers={"X-Actor-Id": "buyer-2"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rate_limit_exhausted_returns_429(client):
    limiter = InMemorySlidingWindowLimiter(max_requests=1, window_seconds=60.0)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    first = await client.post("/api/v1/bookings", json=BOOKING_BODY, headers=BUYER_HEADERS)
    second = await client.post("/api/v1/bookings", json=BOOKING_BODY, headers=BUYER_HEADERS)

    assert first.status_code == 201
    assert first.headers["X-RateLimit-Remaining"] == "0"
    assert second.status_code == 429
    assert second.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert int(second.headers["Retry-After"]) >= 1
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert second.headers["X-RateLimit-Reset"] == str(
        second.json()["error"]["details"]["resetAt"],
    )


@pytest.mark.asyncio
async def test_rotating_forwarded_for_does_not_reset_budget(client):
    limiter = InMemorySlidingWindowLimiter(max_requests=1, window_seconds=60.0)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    statuses = []
    for i in range(4):
        response = await client.post(
            "/api/v1/bookings", json=BOOKING_BODY,
            headers={**BUYER_HEADERS, "X-Forwarded-For": f"10.0.0.{i}"},
        )
        statuses.append(response.status_code)

    assert statuses == [201, 429, 429, 429]
    assert limiter.tracked_keys == 1
