from decimal import Decimal

import pytest

from conftest import ADDRESS, ADMIN, CUSTOMER, VENDOR_A, VENDOR_B, headers


API = "/api/v1"


async def _open_wallets(client):
    for vendor, rate in ((VENDOR_A, "10.00"), (VENDOR_B, "20.00")):
        resp = await client.post(
            f"{API}/wallets",
            json={"vendor_id": vendor.user_id, "commission_rate": rate},
            headers=headers(ADMIN),
        )
        assert resp.status_code == 201, resp.text


async def _place(client, *lines):
    body = {
        "items": [
            {"vendor_id": v.user_id, "product_snapshot": {"name": name}, "unit_price": price, "quantity": 1}
            for v, name, price in lines
        ],
        "address": ADDRESS,
    }
    resp = await client.post(f"{API}/orders", json=body, headers=headers(CUSTOMER))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_identity_headers_required(client):
    resp = await client.get(f"{API}/orders")
    assert resp.status_code == 401
    body = resp.json()
    assert body["code"] == 30001
    assert body["error"]["type"] == "Unauthorized"

    resp = await client.get(f"{API}/orders", headers={"X-User-Id": "svc", "X-User-Role": "SYSTEM"})
    assert resp.status_code == 401

    resp = await client.get(f"{API}/orders", headers={"X-User-Id": "svc", "X-User-Role": "ROOT"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_order_to_wallet_over_http(client, notifier):
    await _open_wallets(client)
    order = await _place(client, (VENDOR_A, "Kettle", "1000.00"), (VENDOR_B, "Mug", "500.00"))
    assert Decimal(order["total"]) == Decimal("1500.00")

    resp = await client.post(
        f"{API}/payments/events",
        json={"order_number": order["order_number"], "payment_ref": "PG-778812", "status": "COMPLETED"},
        headers=headers(ADMIN),
    )
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["current_status"] == "PAYMENT_CONFIRMED"

    for item, vendor in zip(order["items"], (VENDOR_A, VENDOR_B)):
        for step in ({"status": "PROCESSING"}, {"status": "SHIPPED", "tracking_number": f"TRK-{item['id']}"}):
            resp = await client.patch(
                f"{API}/orders/items/{item['id']}/status", json=step, headers=headers(vendor)
            )
            assert resp.status_code == 200, resp.text

    resp = await client.post(f"{API}/orders/{order['id']}/mark-delivered", headers=headers(VENDOR_B))
    assert resp.json()["data"]["current_status"] == "DELIVERED"
    resp = await client.post(f"{API}/orders/{order['id']}/confirm-delivery", headers=headers(CUSTOMER))
    assert resp.status_code == 200, resp.text

    resp = await client.get(f"{API}/wallets/me", headers=headers(VENDOR_A))
    wallet = resp.json()["data"]
    assert Decimal(wallet["available_balance"]) == Decimal("900.00")
    assert Decimal(wallet["pending_balance"]) == Decimal("0.00")

    resp = await client.get(f"{API}/wallets/me/transactions", params={"type": "RELEASE"}, headers=headers(VENDOR_B))
    page = resp.json()["data"]
    assert page["total"] == 1
    assert Decimal(page["items"][0]["amount"]) == Decimal("400.00")

    resp = await client.get(f"{API}/wallets/{VENDOR_B.user_id}/reconcile", headers=headers(ADMIN))
    assert resp.json()["data"]["consistent"] is True

    assert "OrderFundsReleased" in notifier.event_types


@pytest.mark.asyncio
async def test_error_envelopes(client):
    await _open_wallets(client)
    order = await _place(client, (VENDOR_A, "Kettle", "1000.00"))

    resp = await client.post(
        f"{API}/payments/events",
        json={"order_number": order["order_number"], "status": "COMPLETED"},
        headers=headers(CUSTOMER),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == 30002

    resp = await client.get(f"{API}/orders/999999", headers=headers(ADMIN))
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "OrderNotFound"

    resp = await client.post(f"{API}/orders", json={"items": [], "address": ADDRESS}, headers=headers(CUSTOMER))
    assert resp.status_code == 422
    assert resp.json()["code"] == 10003

    resp = await client.post(f"{API}/orders/{order['id']}/mark-delivered", headers=headers(ADMIN))
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "InvalidTransition"

    resp = await client.post(
        f"{API}/wallets",
        json={"vendor_id": VENDOR_A.user_id},
        headers=headers(ADMIN),
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == 20014


@pytest.mark.asyncio
async def test_payout_over_http(client):
    await _open_wallets(client)
    resp = await client.post(
        f"{API}/wallets/{VENDOR_A.user_id}/adjustments",
        json={"amount": "2500.00", "reason": "Opening balance transfer"},
        headers=headers(ADMIN),
    )
    assert resp.status_code == 200, resp.text

    resp = await client.post(
        f"{API}/payouts",
        json={
            "amount": "2000.00",
            "bank_name": "Sampath Bank",
            "account_number": "1002003004",
            "account_holder": "Kamala Silva",
        },
        headers=headers(VENDOR_A),
    )
    assert resp.status_code == 201, resp.text
    payout_id = resp.json()["data"]["payout"]["id"]

    resp = await client.post(f"{API}/payouts/{payout_id}/approve", json={}, headers=headers(ADMIN))
    assert resp.status_code == 200, resp.text
    assert Decimal(resp.json()["data"]["available_after"]) == Decimal("500.00")

    resp = await client.post(f"{API}/payouts/{payout_id}/approve", json={}, headers=headers(ADMIN))
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "AlreadyTerminal"
