import json

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_aggregator_factory, get_uow_factory
from application.utils.signature import sign_body
from domain.payment.entity import BankAccount, OrderStatus
from main import app
from shared.codes.payment_codes import PaymentCode
from tests.fakes import ACCOUNT_ID, SECRET, static_payload


@pytest.fixture
def client(store, aggregator_factory):
    app.dependency_overrides[get_uow_factory] = lambda: store.uow_factory
    app.dependency_overrides[get_aggregator_factory] = lambda: aggregator_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_order(client, amount: int = 50000) -> dict:
    resp = client.post(
        "/api/v1/payments/orders",
        json={"customer_name": "Budi", "customer_phone": "081234567890", "amount": amount},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def post_webhook(client, records, headers) -> "object":
    return client.post(
        "/api/v1/payments/webhooks/moota",
        content=json.dumps(records).encode(),
        headers={"Content-Type": "application/json", **headers},
    )


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}


def test_create_and_get_order(client, settings):
    order = create_order(client)

    assert order["status"] == "PENDING"
    assert order["total_amount"] == order["amount"] + order["unique_code"]
    assert 1 <= order["unique_code"] <= 999

    resp = client.get(f"/api/v1/payments/orders/{order['order_id']}")
    assert resp.status_code == 200
    assert resp.json()["code"] == 0
    assert resp.json()["data"]["order_id"] == order["order_id"]


def test_create_order_without_settings_conflicts(client):
    resp = client.post(
        "/api/v1/payments/orders",
        json={"customer_name": "Budi", "customer_phone": "081234567890", "amount": 50000},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == PaymentCode.NOT_CONFIGURED


def test_create_order_validates_amount(client, settings):
    resp = client.post(
        "/api/v1/payments/orders",
        json={"customer_name": "Budi", "customer_phone": "081234567890", "amount": 0},
    )
    assert resp.status_code == 422


def test_unknown_order_is_404(client, settings):
    resp = client.get("/api/v1/payments/orders/BK-0-nothing")
    assert resp.status_code == 404


def test_confirm_then_cancel_is_rejected(client, settings):
    order = create_order(client)
    order_id = order["order_id"]

    assert client.post(f"/api/v1/payments/orders/{order_id}/cancel").json()["data"]["status"] == "CANCELLED"
    resp = client.post(f"/api/v1/payments/orders/{order_id}/confirm")
    assert resp.status_code == 409
    assert resp.json()["code"] == PaymentCode.INVALID_TRANSITION


def test_check_endpoint_reports_not_paid(client, settings, aggregator):
    order = create_order(client)

    resp = client.post(f"/api/v1/payments/orders/{order['order_id']}/check")

    assert resp.status_code == 200
    body = resp.json()["data"]
    assert body["paid"] is False
    assert body["status"] == OrderStatus.CHECKING.value
    assert aggregator.closed == 1


def test_webhook_settles_order_with_bare_response(client, settings):
    order = create_order(client)
    records = [{
        "mutation_id": "m-1",
        "date": "2099-01-01 10:00:00",
        "amount": order["total_amount"],
        "type": "CR",
        "bank_id": ACCOUNT_ID,
    }]

    resp = post_webhook(client, records, {"X-Secret-Token": SECRET})

    assert resp.status_code == 200
    assert resp.json() == {"processed": [order["order_id"]], "errors": []}
    assert client.get(f"/api/v1/payments/orders/{order['order_id']}").json()["data"]["status"] == "PAID"


def test_webhook_with_hmac_signature(client, settings):
    order = create_order(client)
    raw = json.dumps([{"mutation_id": "m-1", "date": "2099-01-01 10:00:00",
                       "amount": order["total_amount"], "type": "CR"}]).encode()

    resp = client.post(
        "/api/v1/payments/webhooks/moota",
        content=raw,
        headers={"Content-Type": "application/json", "Signature": sign_body(SECRET, raw)},
    )

    assert resp.json()["processed"] == [order["order_id"]]


def test_webhook_wrong_secret_is_401(client, settings, store):
    order = create_order(client)
    records = [{"mutation_id": "m-1", "date": "2099-01-01 10:00:00", "amount": order["total_amount"], "type": "CR"}]

    resp = post_webhook(client, records, {"X-Secret-Token": "wrong-secret"})

    assert resp.status_code == 401
    assert resp.json()["code"] == PaymentCode.SIGNATURE_ERROR
    assert store.orders.rows[order["order_id"]].status == OrderStatus.PENDING


def test_webhook_reports_unparseable_records(client, settings):
    records = [{"mutation_id": "m-1", "date": "2099-01-01 10:00:00", "amount": "lots", "type": "CR"}]

    resp = post_webhook(client, records, {"X-Secret-Token": SECRET})

    assert resp.status_code == 200
    assert resp.json()["processed"] == []
    assert resp.json()["errors"][0].startswith("Failed to parse mutation m-1")


def test_bank_settings_lifecycle(client):
    payload = {
        "access_token": "moota-token",
        "bank_account_id": "acc-1",
        "bank_account_name": "PT Contoh",
        "account_number": "1234567890",
        "bank_type": "BCA",
        "secret_token": "whsec-long-enough",
        "unique_code_start": 100,
        "unique_code_end": 200,
    }
    created = client.post("/api/v1/bank-settings", json=payload)
    assert created.status_code == 201
    data = created.json()["data"]
    assert data["bank_type"] == "bca"
    assert data["bank_type_name"] == "Bank BCA"
    assert data["has_secret_token"] is True
    assert "access_token" not in data and "secret_token" not in data

    second = client.post("/api/v1/bank-settings", json={**payload, "bank_account_id": "acc-2"}).json()["data"]
    active = client.get("/api/v1/bank-settings/active").json()["data"]
    assert active["id"] == second["id"]

    listed = client.get("/api/v1/bank-settings").json()["data"]
    assert [s["is_active"] for s in listed if s["id"] == data["id"]] == [False]

    resp = client.patch(f"/api/v1/bank-settings/{data['id']}", json={"unique_code_end": 50})
    assert resp.status_code == 422

    assert client.delete(f"/api/v1/bank-settings/{data['id']}").status_code == 200
    assert client.delete(f"/api/v1/bank-settings/{data['id']}").status_code == 404


def test_test_connection_uses_given_token(client, aggregator, aggregator_factory):
    aggregator.accounts = [BankAccount(bank_id="b1", account_number="123", bank_type="bca")]

    resp = client.post("/api/v1/bank-settings/test-connection", json={"access_token": "temp-token"})

    assert resp.status_code == 200
    body = resp.json()["data"]
    assert body["success"] is True
    assert body["message"] == "Connection successful! Found 1 bank account(s)."
    assert body["bank_accounts"][0]["bank_type_name"] == "Bank BCA"
    assert aggregator_factory.tokens == ["temp-token"]


def test_list_mutations_is_paginated(client, settings, aggregator):
    resp = client.get("/api/v1/bank-settings/mutations", params={"page": 1, "per_page": 10})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["items"] == [] and data["total"] == 0
    assert aggregator.queries[0].bank_id == ACCOUNT_ID


def test_qris_dynamic_endpoint(client):
    resp = client.post("/api/v1/qris/dynamic", json={"payload": static_payload("ACME"), "amount": 15000})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert "540515000" in data["payload"]
    assert data["merchant_name"] == "ACME"
    assert data["valid"] is True


def test_qris_dynamic_rejects_payload_without_country(client):
    resp = client.post(
        "/api/v1/qris/dynamic",
        json={"payload": static_payload(country=False), "amount": 15000},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == PaymentCode.INVALID_FORMAT


def test_qris_inspect_endpoint(client):
    dynamic = client.post("/api/v1/qris/dynamic", json={"payload": static_payload(), "amount": 2500}).json()["data"]

    resp = client.post("/api/v1/qris/inspect", json={"payload": dynamic["payload"]})

    data = resp.json()["data"]
    assert data == {
        "valid": True,
        "merchant_name": "ACME",
        "merchant_city": "JAKARTA",
        "is_dynamic": True,
        "amount": 2500,
    }
