# tests/test_orders.py
import asyncio
import re

import pytest

from conftest import ADDRESS, bearer, make_user, seed_product, stock_of
from souq import orders
from souq.database import ORDERS
from souq.errors import Forbidden, InsufficientStock, InvalidTransition, NotFound, Unavailable


def _place(store, user_id, *lines):
    items = [{"product": pid, "quantity": qty} for pid, qty in lines]
    return asyncio.run(orders.create_order(store, user_id, items, ADDRESS))


def test_place_order_decrements_stock_and_prices_lines(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, price=10.0, sku="PHONE-1")
    case = seed_product(store, admin["id"], category["id"], stock=4, price=2.5, en="Case", sku="CASE-1")

    order = _place(store, customer["id"], (phone["id"], 3), (case["id"], 2))

    assert order["status"] == "pending"
    assert order["payment_method"] == "cash_on_delivery"
    assert [item["subtotal"] for item in order["items"]] == [30.0, 5.0]
    assert order["total_amount"] == sum(item["subtotal"] for item in order["items"])
    assert all(item["subtotal"] == item["price"] * item["quantity"] for item in order["items"])
    assert stock_of(store, phone["id"]) == 2
    assert stock_of(store, case["id"]) == 2


def test_order_number_format(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 1))
    assert re.fullmatch(r"ORD-\d{8}-\d{6}", order["order_number"])


def test_over_quantity_leaves_everything_untouched(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    case = seed_product(store, admin["id"], category["id"], stock=1, en="Case", sku="CASE-1")

    with pytest.raises(InsufficientStock) as exc:
        # first line would succeed; the second must roll it back
        _place(store, customer["id"], (phone["id"], 2), (case["id"], 3))

    assert exc.value.params == {"name": "Case", "available": 1, "requested": 3}
    assert stock_of(store, phone["id"]) == 5
    assert stock_of(store, case["id"]) == 1
    assert asyncio.run(store.count(ORDERS)) == 0


def test_duplicate_lines_are_checked_cumulatively(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=3, sku="PHONE-1")
    with pytest.raises(InsufficientStock):
        _place(store, customer["id"], (phone["id"], 2), (phone["id"], 2))
    assert stock_of(store, phone["id"]) == 3

    order = _place(store, customer["id"], (phone["id"], 1), (phone["id"], 2))
    assert len(order["items"]) == 2
    assert stock_of(store, phone["id"]) == 0


def test_missing_and_inactive_products(store, admin, customer, category):
    retired = seed_product(store, admin["id"], category["id"], sku="OLD-1", is_active=False)
    with pytest.raises(NotFound):
        _place(store, customer["id"], ("does-not-exist", 1))
    with pytest.raises(Unavailable):
        _place(store, customer["id"], (retired["id"], 1))


def test_cancel_restores_stock_and_second_cancel_fails(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 3))
    assert stock_of(store, phone["id"]) == 2

    cancelled = asyncio.run(orders.cancel_order(store, order["id"], customer))
    assert cancelled["status"] == "cancelled"
    assert stock_of(store, phone["id"]) == 5

    with pytest.raises(InvalidTransition):
        asyncio.run(orders.cancel_order(store, order["id"], customer))
    assert stock_of(store, phone["id"]) == 5


def test_cancel_skips_products_that_no_longer_exist(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    case = seed_product(store, admin["id"], category["id"], stock=5, en="Case", sku="CASE-1")
    order = _place(store, customer["id"], (phone["id"], 1), (case["id"], 2))
    store._docs("products").pop(phone["id"])

    cancelled = asyncio.run(orders.cancel_order(store, order["id"], customer))
    assert cancelled["status"] == "cancelled"
    assert stock_of(store, case["id"]) == 5


def test_shipped_order_cannot_be_cancelled(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 2))
    for status in ("confirmed", "processing", "shipped"):
        asyncio.run(orders.update_order_status(store, order["id"], status, admin))

    with pytest.raises(InvalidTransition):
        asyncio.run(orders.cancel_order(store, order["id"], admin))
    assert stock_of(store, phone["id"]) == 3


@pytest.mark.parametrize("path, target, allowed", [
    ([], "confirmed", True),
    ([], "shipped", False),
    ([], "pending", False),
    (["confirmed"], "processing", True),
    (["confirmed"], "cancelled", True),
    (["confirmed", "processing"], "cancelled", False),
    (["confirmed", "processing", "shipped"], "delivered", True),
    (["confirmed", "processing", "shipped", "delivered"], "processing", False),
])
def test_status_transitions(store, admin, customer, category, path, target, allowed):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 1))
    for status in path:
        asyncio.run(orders.update_order_status(store, order["id"], status, admin))

    if allowed:
        updated = asyncio.run(orders.update_order_status(store, order["id"], target, admin))
        assert updated["status"] == target
    else:
        with pytest.raises(InvalidTransition):
            asyncio.run(orders.update_order_status(store, order["id"], target, admin))


def test_admin_status_update_to_cancelled_restocks(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 4))
    asyncio.run(orders.update_order_status(store, order["id"], "confirmed", admin))
    asyncio.run(orders.update_order_status(store, order["id"], "cancelled", admin))
    assert stock_of(store, phone["id"]) == 5


def test_ownership_rules(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 1))
    bob = make_user(store, "bob@example.com", name="Bob")

    with pytest.raises(NotFound):
        asyncio.run(orders.get_order(store, order["id"], bob))
    with pytest.raises(NotFound):
        asyncio.run(orders.cancel_order(store, order["id"], bob))
    with pytest.raises(Forbidden):
        asyncio.run(orders.update_order_status(store, order["id"], "confirmed", customer))
    assert asyncio.run(orders.get_order(store, order["id"], admin))["id"] == order["id"]


def test_status_route_cancel_is_admin_only(client, store, admin, customer, category, customer_headers):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    order = _place(store, customer["id"], (phone["id"], 2))

    with pytest.raises(Forbidden):
        asyncio.run(orders.update_order_status(store, order["id"], "cancelled", customer))
    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "cancelled"}, headers=customer_headers)
    assert r.status_code == 403
    assert asyncio.run(store.get(ORDERS, order["id"]))["status"] == "pending"
    assert stock_of(store, phone["id"]) == 3

    # owners cancel through the dedicated route
    r = client.patch(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)
    assert r.status_code == 200
    assert stock_of(store, phone["id"]) == 5


def test_order_endpoints(client, store, admin, customer, category, customer_headers, admin_headers, settings):
    phone = seed_product(store, admin["id"], category["id"], stock=5, price=10.0, sku="PHONE-1")

    r = client.post("/api/v1/orders", json={
        "items": [{"product": phone["id"], "quantity": 3}],
        "shipping_address": ADDRESS,
        "payment_method": "paypal",
    }, headers=customer_headers)
    assert r.status_code == 201
    order = r.json()["data"]["order"]
    assert order["total_amount"] == 30.0
    assert order["payment_method"] == "paypal"

    r = client.post("/api/v1/orders", json={
        "items": [{"product": phone["id"], "quantity": 3}], "shipping_address": ADDRESS,
    }, headers=customer_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "INSUFFICIENT_STOCK"
    assert stock_of(store, phone["id"]) == 2

    mine = client.get("/api/v1/orders", headers=customer_headers).json()["data"]
    assert [o["id"] for o in mine["orders"]] == [order["id"]]
    assert mine["pagination"]["total_items"] == 1

    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "confirmed"}, headers=customer_headers)
    assert r.status_code == 403

    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "confirmed"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["order"]["status"] == "confirmed"

    r = client.patch(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)
    assert r.status_code == 200
    assert stock_of(store, phone["id"]) == 5

    r = client.patch(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_TRANSITION"

    bob_headers = bearer(make_user(store, "bob@example.com", name="Bob"), settings)
    assert client.get(f"/api/v1/orders/{order['id']}", headers=bob_headers).status_code == 404


def test_order_requires_items_and_address(client, customer_headers):
    r = client.post("/api/v1/orders", json={"items": [], "shipping_address": ADDRESS}, headers=customer_headers)
    assert r.status_code == 400
    r = client.post("/api/v1/orders", json={"items": [{"product": "x", "quantity": 1}]}, headers=customer_headers)
    assert r.status_code == 400


def test_order_statistics(client, store, admin, customer, category, admin_headers):
    phone = seed_product(store, admin["id"], category["id"], stock=10, price=10.0, sku="PHONE-1")
    first = _place(store, customer["id"], (phone["id"], 1))
    _place(store, customer["id"], (phone["id"], 3))
    asyncio.run(orders.cancel_order(store, first["id"], admin))

    data = client.get("/api/v1/orders/admin/stats", headers=admin_headers).json()["data"]
    assert data["total_stats"] == {"total_orders": 2, "total_revenue": 40.0, "average_order_value": 20.0}
    by_status = {s["status"]: s for s in data["status_stats"]}
    assert by_status["cancelled"]["count"] == 1
    assert by_status["pending"]["total_amount"] == 30.0
