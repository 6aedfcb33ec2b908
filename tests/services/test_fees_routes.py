"""Fees Routes — tests for quotes and admin fee-rate configuration."""

import pytest

ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}

QUOTE = {
    "baseAmount": 10000,
    "vertical": "cdmo",
    "facilityType": "bioprocessing",
    "paymentMethod": "crypto",
    "isPriority": True,
    "requiresInsurance": True,
}


@pytest.mark.asyncio
async def test_quote_itemizes_fees(client):
    response = await client.post("/api/v1/fees/quote", json=QUOTE)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["bookingCommission"] == "300.00"
    assert data["escrowServiceFee"] == "15.00"
    assert data["totalFees"] == "397.50"
    assert data["totalAmount"] == "10397.50"
    assert data["netToFacility"] == "9625.00"


@pytest.mark.asyncio
async def test_get_rates_returns_defaults_camel_case(client):
    response = await client.get("/api/v1/fees/rates")

    data = response.json()["data"]
    assert data["bookingCommission"] == {"min": "0.02", "default": "0.03", "max": "0.05"}
    assert data["tokenizationFee"]["smallTransactionCap"] == "50"
    assert sorted(data["stableTokens"]) == ["DAI", "USDC", "USDT"]


@pytest.mark.asyncio
async def test_admin_update_changes_future_quotes(client):
    rates = (await client.get("/api/v1/fees/rates")).json()["data"]
    rates["bookingCommission"] = {"min": "0.04", "default": "0.05", "max": "0.05"}

    updated = await client.put("/api/v1/fees/rates", json=rates, headers=ADMIN_HEADERS)
    quote = await client.post("/api/v1/fees/quote", json=QUOTE)

    assert updated.status_code == 200
    assert updated.json()["data"]["bookingCommission"]["default"] == "0.05"
    assert quote.json()["data"]["bookingCommission"] == "500.00"


@pytest.mark.asyncio
async def test_update_by_non_admin_forbidden(client):
    rates = (await client.get("/api/v1/fees/rates")).json()["data"]
    response = await client.put(
        "/api/v1/fees/rates", json=rates, headers={"X-Actor-Id": "buyer-1"},
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_update_with_inverted_band_rejected(client):
    rates = (await client.get("/api/v1/fees/rates")).json()["data"]
    rates["insurancePoolFee"] = {"min": "0.002", "default": "0.001", "max": "0.003"}

    response = await client.put("/api/v1/fees/rates", json=rates, headers=ADMIN_HEADERS)

    assert response.status_code == 400
    assert response.json()["error"]["details"] == {"field": "insurance_pool_fee"}
