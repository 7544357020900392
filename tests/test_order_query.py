from datetime import datetime, timedelta, timezone

import pytest

from storefront.data.models.order import OrderModel
from storefront.domain.errors import NotAuthenticated, NotFound, ValidationError
from storefront.services.cart_service import CartService
from storefront.services.order_query import OrderQuery, filter_orders
from storefront.services.order_service import OrderService

ROSE, TULIP, LILY, PEONY = 1, 2, 3, 5


def _place(db, user, product_id, customer, address, created_at):
    cart = CartService(db, user)
    cart.clear()
    cart.add_line(product_id, 1)
    order_id = OrderService(db, user).create_order(customer, address, cart.lines)

    order = db.get(OrderModel, order_id)
    order.created_at = created_at
    db.commit()
    return order_id


@pytest.fixture
def history(db, customer, address):
    t0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    ids = {
        "rose": _place(db, "alice", ROSE, customer, address, t0),
        "lily": _place(db, "alice", LILY, customer, address, t0 + timedelta(days=1)),
        "peony": _place(db, "alice", PEONY, customer, address, t0 + timedelta(days=2)),
        "bob": _place(db, "bob", TULIP, {"name": "Bob", "email": "bob@example.com"}, address, t0),
    }
    OrderService(db).mark_paid(ids["lily"], "sess_lily")
    return ids


def _orders():
    return [
        {"id": "a1b2", "status": "paid", "customer_name": "Aigerim", "items": [{"product_name": "Red Rose"}]},
        {"id": "c3d4", "status": "unpaid", "customer_name": "Dana", "items": [{"product_name": "Pink Tulip"}]},
        {"id": "e5f6", "status": "unpaid", "customer_name": "Aigerim", "items": [{"product_name": "Peony Box"}]},
    ]


@pytest.mark.parametrize(
    "status, search, expected",
    [
        ("all", "", ["a1b2", "c3d4", "e5f6"]),
        ("paid", "", ["a1b2"]),
        ("unpaid", "", ["c3d4", "e5f6"]),
        ("all", "TULIP", ["c3d4"]),
        ("all", "aigerim", ["a1b2", "e5f6"]),
        ("unpaid", "aigerim", ["e5f6"]),
        ("all", "C3", ["c3d4"]),
        ("all", "  ", ["a1b2", "c3d4", "e5f6"]),
        ("paid", "peony", []),
    ],
)
def test_filter_orders(status, search, expected):
    assert [o["id"] for o in filter_orders(_orders(), status, search)] == expected


def test_list_orders_newest_first_and_own_only(db, history):
    orders = OrderQuery(db, "alice").list_orders()

    assert [o["id"] for o in orders] == [history["peony"], history["lily"], history["rose"]]
    assert all(o["user_id"] == "alice" for o in orders)


def test_list_orders_by_status_and_search(db, history):
    query = OrderQuery(db, "alice")

    assert [o["id"] for o in query.list_orders(status="paid")] == [history["lily"]]
    assert [o["id"] for o in query.list_orders(status="unpaid", search="rose")] == [history["rose"]]
    assert query.list_orders(search="tulip") == []


def test_list_orders_rejects_unknown_status(db, history):
    with pytest.raises(ValidationError):
        OrderQuery(db, "alice").list_orders(status="shipped")


def test_list_orders_requires_identity(db):
    with pytest.raises(NotAuthenticated):
        OrderQuery(db, None).list_orders()


def test_other_users_order_looks_missing(db, history):
    with pytest.raises(NotFound):
        OrderQuery(db, "alice").get_order(history["bob"])
    with pytest.raises(NotFound):
        OrderQuery(db, "alice").get_order("no-such-order")


def test_get_order_detail(db, history):
    order = OrderQuery(db, "alice").get_order(history["lily"])

    assert order["status"] == "paid"
    assert order["payment_session_id"] == "sess_lily"
    assert [i["product_name"] for i in order["items"]] == ["White Lily Bouquet"]
    assert order["shipping_fee"] == 1000
    assert order["total"] == 13500
