import asyncio

import pytest

from conftest import bearer, make_user, seed_product, stock_of
from souq.errors import Forbidden, InsufficientStock, NotFound, ValidationFailed
from souq.inventory import adjust_stock


def _adjust(store, product_id, amount, operation, actor):
    return asyncio.run(adjust_stock(store, product_id, amount, operation, actor))


@pytest.mark.parametrize("operation, amount, expected, label", [
    ("add", 3, 8, "+3"),
    ("subtract", 5, 0, "-5"),
    ("set", 0, 0, "set to 0"),
    ("set", 42, 42, "set to 42"),
])
def test_adjust_operations(store, admin, category, operation, amount, expected, label):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")
    result = _adjust(store, phone["id"], amount, operation, admin)
    assert result["previous_stock"] == 5
    assert result["current_stock"] == expected
    assert result["stock_change"] == label
    assert result["operation"] == operation
    assert stock_of(store, phone["id"]) == expected


def test_subtract_below_zero_is_rejected(store, admin, category):
    phone = seed_product(store, admin["id"], category["id"], stock=2, sku="PHONE-1")
    with pytest.raises(InsufficientStock):
        _adjust(store, phone["id"], 3, "subtract", admin)
    assert stock_of(store, phone["id"]) == 2


def test_bad_input(store, admin, category):
    phone = seed_product(store, admin["id"], category["id"], stock=2, sku="PHONE-1")
    with pytest.raises(ValidationFailed):
        _adjust(store, phone["id"], -1, "set", admin)
    with pytest.raises(ValidationFailed):
        _adjust(store, phone["id"], 1, "multiply", admin)
    with pytest.raises(NotFound):
        _adjust(store, "missing", 1, "add", admin)


def test_only_admin_or_creator(store, admin, customer, category):
    phone = seed_product(store, admin["id"], category["id"], stock=2, sku="PHONE-1")
    with pytest.raises(Forbidden):
        _adjust(store, phone["id"], 1, "add", customer)

    own = seed_product(store, customer["id"], category["id"], stock=2, sku="OWN-1")
    assert _adjust(store, own["id"], 1, "add", customer)["current_stock"] == 3


def test_stock_endpoint(client, store, admin, category, admin_headers, settings):
    phone = seed_product(store, admin["id"], category["id"], stock=5, sku="PHONE-1")

    r = client.patch(f"/api/v1/products/{phone['id']}/stock", json={"stock": 4}, headers=admin_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["operation"] == "set"
    assert (data["previous_stock"], data["current_stock"]) == (5, 4)

    r = client.patch(f"/api/v1/products/{phone['id']}/stock",
                     json={"stock": 10, "operation": "subtract"}, headers=admin_headers)
    assert r.status_code == 409

    r = client.patch(f"/api/v1/products/{phone['id']}/stock",
                     json={"stock": 1, "operation": "double"}, headers=admin_headers)
    assert r.status_code == 400

    other = bearer(make_user(store, "bob@example.com", name="Bob"), settings)
    r = client.patch(f"/api/v1/products/{phone['id']}/stock", json={"stock": 1}, headers=other)
    assert r.status_code == 403
