import pytest

from conftest import seed_product
from souq.i18n import detect_language, is_bilingual_field, localize, translate


@pytest.mark.parametrize("header, expected", [
    (None, None),
    ("", None),
    ("ar", "ar"),
    ("en-US,en;q=0.9", "en"),
    ("ar-SA,ar;q=0.9,en;q=0.8", "ar"),
    ("fr-FR,fr;q=0.9,ar;q=0.5", "ar"),
    ("en;q=0.3,ar;q=0.7", "ar"),
    ("de,fr", None),
    ("ar;q=0,en;q=0.1", "en"),
    ("*", None),
])
def test_detect_language(header, expected):
    assert detect_language(header) == expected


def test_localize_picks_variant():
    assert localize({"en": "A", "ar": "B"}, "ar") == "B"
    assert localize({"en": "A", "ar": "B"}, "en") == "A"


def test_localize_without_language_returns_full_record():
    record = {"name": {"en": "A", "ar": "B"}, "price": 3}
    assert localize(record, None) == record


def test_localize_falls_back_to_other_variant():
    assert localize({"en": "A"}, "ar") == "A"
    assert localize({"en": "A", "ar": ""}, "ar") == "A"
    assert localize({"en": None, "ar": "B"}, "en") == "B"


def test_localize_is_recursive_and_pure():
    data = {
        "products": [
            {"name": {"en": "Phone", "ar": "هاتف"}, "stock": 2, "category": {"name": {"en": "E", "ar": "ع"}}},
        ],
        "meta": {"en": 1},  # not a bilingual field: values are not strings
    }
    out = localize(data, "ar")
    assert out["products"][0]["name"] == "هاتف"
    assert out["products"][0]["category"]["name"] == "ع"
    assert out["meta"] == {"en": 1}
    assert data["products"][0]["name"] == {"en": "Phone", "ar": "هاتف"}


def test_is_bilingual_field():
    assert is_bilingual_field({"en": "x", "ar": None})
    assert not is_bilingual_field({})
    assert not is_bilingual_field({"en": "x", "fr": "y"})
    assert not is_bilingual_field("x")


def test_translate():
    assert translate("order.created_success", "en") == "Order created successfully"
    both = translate("order.created_success", None)
    assert set(both) == {"en", "ar"}
    assert translate("order.invalid_transition", "en", current="pending", target="shipped") == \
        "Order cannot move from pending to shipped"
    assert translate("no.such.key", "ar") == "no.such.key"


def test_response_shaping_over_http(client, store, admin, category):
    phone = seed_product(store, admin["id"], category["id"], sku="PHONE-1")
    url = f"/api/v1/products/{phone['id']}"

    body = client.get(url, headers={"Accept-Language": "ar"}).json()
    assert body["language"] == "ar"
    assert body["data"]["product"]["name"] == "هاتف"
    assert body["data"]["product"]["category"]["name"] == "إلكترونيات"
    assert body["message"] == "تم جلب المنتج بنجاح"

    body = client.get(url, headers={"Accept-Language": "en-GB,en;q=0.8"}).json()
    assert body["language"] == "en"
    assert body["data"]["product"]["name"] == "Phone"

    body = client.get(url).json()
    assert body["language"] == "bilingual"
    assert body["supported_languages"] == ["en", "ar"]
    assert body["data"]["product"]["name"] == {"en": "Phone", "ar": "هاتف"}
    assert body["message"]["en"] == "Product retrieved successfully"


def test_english_only_product_in_arabic(client, store, admin, category):
    phone = seed_product(store, admin["id"], category["id"], en="Cable", ar=None, sku="CABLE-1")
    body = client.get(f"/api/v1/products/{phone['id']}", headers={"Accept-Language": "ar"}).json()
    assert body["data"]["product"]["name"] == "Cable"


def test_error_messages_are_localized(client):
    body = client.get("/api/v1/products/missing", headers={"Accept-Language": "ar"}).json()
    assert body["status"] == "fail"
    assert body["code"] == "NOT_FOUND"
    assert body["error"] == "المنتج غير موجود"
