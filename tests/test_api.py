import json

import pytest
from fastapi.testclient import TestClient

from storefront.api import get_gateway, get_lock_service, get_notifier
from storefront.data.database import get_db
from storefront.data.models.order import OrderModel
from storefront.main import app
from storefront.services.order_service import OrderService

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client(db, gateway, lock, notifier):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_lock_service] = lambda: lock
    app.dependency_overrides[get_notifier] = lambda: notifier

    # not used as a context manager: the lifespan hook would touch the real database
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def checkout_body(customer, address):
    return {"customer": customer, "shipping_address": address}


def _fill_cart(client):
    client.post("/cart/items", json={"product_id": 1, "quantity": 2}, headers=ALICE)
    return client.post("/cart/items", json={"product_id": 2}, headers=ALICE)


def test_health(client):
    assert client.get("/health").status_code == 200


def test_products_search(client):
    res = client.get("/products/", params={"q": "rose"})

    assert res.status_code == 200
    assert [p["name"] for p in res.json()] == ["Red Rose"]

    assert client.get("/products/3").json()["name"] == "White Lily Bouquet"
    assert client.get("/products/999").status_code == 404


def test_cart_requires_identity(client):
    assert client.get("/cart/").status_code == 401
    assert client.post("/cart/items", json={"product_id": 1}).status_code == 401


def test_cart_totals(client):
    res = _fill_cart(client)

    assert res.status_code == 200
    body = res.json()
    assert body["item_count"] == 3
    assert float(body["subtotal"]) == 3800
    assert float(body["shipping_fee"]) == 1000
    assert float(body["total"]) == 4800

    line_id = body["items"][0]["id"]
    res = client.patch(f"/cart/items/{line_id}", json={"quantity": 0}, headers=ALICE)
    assert [i["product_id"] for i in res.json()["items"]] == [2]


def test_full_checkout_flow(client, db, gateway, notifier):
    _fill_cart(client)

    res = client.post("/orders/checkout", json=_body(), headers=ALICE)
    assert res.status_code == 201
    started = res.json()
    assert started["status"] == "unpaid"
    assert started["url"].startswith("https://checkout.test/")

    # cart survives until payment is confirmed
    assert client.get("/cart/", headers=ALICE).json()["item_count"] == 3

    gateway.pay(started["session_id"])
    params = {"session_id": started["session_id"], "order_id": started["order_id"], "success": "true"}

    first = client.get("/payments/verify", params=params, headers=ALICE).json()
    second = client.get("/payments/verify", params=params, headers=ALICE).json()

    assert first["outcome"] == "paid" and first["transitioned"] is True
    assert second["outcome"] == "paid" and second["transitioned"] is False
    assert len(notifier.sent) == 1
    assert client.get("/cart/", headers=ALICE).json()["items"] == []

    orders = client.get("/orders/", params={"status": "paid"}, headers=ALICE).json()
    assert [o["id"] for o in orders] == [started["order_id"]]
    assert float(orders[0]["total"]) == 4800


def test_pending_payment_is_reported(client, gateway):
    _fill_cart(client)
    started = client.post("/orders/checkout", json=_body(), headers=ALICE).json()

    res = client.get(
        "/payments/verify",
        params={"session_id": started["session_id"], "success": "true"},
        headers=ALICE,
    )

    assert res.json()["outcome"] == "pending"
    assert res.json()["status"] == "unpaid"


def test_missing_fields_are_reported(client, checkout_body):
    _fill_cart(client)
    checkout_body["shipping_address"]["city"] = ""
    checkout_body["customer"]["email"] = " "

    res = client.post("/orders/", json=checkout_body, headers=ALICE)

    assert res.status_code == 422
    assert set(res.json()["detail"]["fields"]) == {"email", "shipping_address.city"}


def test_checkout_with_empty_cart(client):
    res = client.post("/orders/checkout", json=_body(), headers=ALICE)

    assert res.status_code == 422
    assert "items" in res.json()["detail"]["fields"]


def test_gateway_failure_keeps_unpaid_order(client, db, gateway):
    _fill_cart(client)
    gateway.fail_create = True

    res = client.post("/orders/checkout", json=_body(), headers=ALICE)

    assert res.status_code == 502
    order_id = res.json()["detail"]["order_id"]
    db.expire_all()
    order = db.get(OrderModel, order_id)
    assert order.status == "unpaid"
    assert order.payment_session_id is None

    gateway.fail_create = False
    res = client.post(f"/orders/{order_id}/pay", headers=ALICE)
    assert res.status_code == 200
    assert res.json()["url"]


def test_lock_store_down_keeps_unpaid_order(client, db, gateway, lock):
    _fill_cart(client)
    lock.down = True

    res = client.post("/orders/checkout", json=_body(), headers=ALICE)

    assert res.status_code == 502
    order_id = res.json()["detail"]["order_id"]
    db.expire_all()
    assert db.get(OrderModel, order_id).status == "unpaid"
    assert gateway.created == []


def test_settling_payment_does_not_open_new_session(client, db, gateway):
    _fill_cart(client)
    order_id = client.post("/orders/", json=_body(), headers=ALICE).json()["order_id"]
    gateway.add_session("sess_async", order_id, payment_status="unpaid", status="complete")
    OrderService(db).attach_session(order_id, "sess_async")

    res = client.post(f"/orders/{order_id}/pay", headers=ALICE)

    assert res.status_code == 409
    assert gateway.created == []


def test_pay_now_reuses_open_session(client, gateway):
    _fill_cart(client)
    order_id = client.post("/orders/", json=_body(), headers=ALICE).json()["order_id"]

    first = client.post(f"/orders/{order_id}/pay", headers=ALICE).json()
    second = client.post(f"/orders/{order_id}/pay", headers=ALICE).json()

    assert first["session_id"] == second["session_id"]
    assert len(gateway.created) == 1


def test_pay_now_is_refused_while_locked(client, lock):
    _fill_cart(client)
    order_id = client.post("/orders/", json=_body(), headers=ALICE).json()["order_id"]
    lock.held[order_id] = "other"

    assert client.post(f"/orders/{order_id}/pay", headers=ALICE).status_code == 409


def test_orders_are_private(client):
    _fill_cart(client)
    order_id = client.post("/orders/", json=_body(), headers=ALICE).json()["order_id"]

    assert client.get(f"/orders/{order_id}", headers=ALICE).status_code == 200
    assert client.get(f"/orders/{order_id}", headers=BOB).status_code == 404
    assert client.post(f"/orders/{order_id}/pay", headers=BOB).status_code == 403
    assert client.get("/orders/", headers=BOB).json() == []
    assert client.get("/orders/", params={"status": "shipped"}, headers=ALICE).status_code == 422


def test_webhook(client, gateway, notifier):
    _fill_cart(client)
    started = client.post("/orders/checkout", json=_body(), headers=ALICE).json()
    gateway.pay(started["session_id"])
    event = json.dumps(
        {"type": "checkout.session.completed", "data": {"object": {"id": started["session_id"]}}}
    )

    bad = client.post("/payments/webhook", content=event, headers={"stripe-signature": "forged"})
    assert bad.status_code == 400
    assert notifier.sent == []

    res = client.post("/payments/webhook", content=event, headers={"stripe-signature": "valid"})
    assert res.status_code == 200
    assert res.json()["result"]["outcome"] == "paid"
    assert len(notifier.sent) == 1


def _body():
    return {
        "customer": {"name": "Aigerim", "email": "aigerim@example.com"},
        "shipping_address": {
            "street": "Abay Ave 10",
            "city": "Almaty",
            "state": "Almaty Region",
            "postal_code": "050000",
            "country": "Kazakhstan",
        },
    }
