#!/usr/bin/env python
# Walkthrough against a running server started with ADMIN_EMAIL / ADMIN_PASSWORD set.
import os

from rich import print

from souq_sdk.client import SouqClient

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin-password")
BASE_URL = os.getenv("SOUQ_URL", "http://127.0.0.1:8085")


def main():
    c = SouqClient(base_url=BASE_URL)

    # -----------------------------
    # Log in as the seeded admin
    # -----------------------------
    print("Logging in as admin...")
    c.login(ADMIN_EMAIL, ADMIN_PASSWORD)

    # -----------------------------
    # Catalog
    # -----------------------------
    print("\nCreating a category...")
    category = c.create_category("Electronics", "إلكترونيات", "Phones and laptops", "هواتف وحواسيب")["data"]["category"]
    print(category)

    print("\nCreating products...")
    laptop = c.create_product("Laptop", 1500.0, 3, category["id"], name_ar="حاسوب محمول")["data"]["product"]
    mouse = c.create_product("Mouse", 25.0, 10, category["id"], name_ar="فأرة", sku="MOUSE-001")["data"]["product"]
    print(laptop["sku"], mouse["sku"])

    # -----------------------------
    # Same product in three response modes
    # -----------------------------
    for lang in ("en", "ar", None):
        shopper = SouqClient(base_url=BASE_URL, language=lang)
        body = shopper.get_product(laptop["id"])
        print(f"\nAccept-Language={lang!r}: name={body['data']['product']['name']!r} language={body['language']}")

    # -----------------------------
    # Place an order, then cancel it
    # -----------------------------
    print("\nPlacing order...")
    body = c.place_order(
        [{"product": laptop["id"], "quantity": 1}, {"product": mouse["id"], "quantity": 2}],
        {"street": "1 Market St", "city": "Amman", "country": "JO"},
    )
    print(body)
    order = body["data"]["order"]
    print("Stock after order:", c.get_product(laptop["id"])["data"]["product"]["stock"])

    print("\nOrdering more than is in stock...")
    print(c.place_order([{"product": laptop["id"], "quantity": 99}], {"street": "1 Market St", "city": "Amman"}))

    print("\nCancelling...")
    print(c.cancel_order(order["id"]))
    print("Stock after cancel:", c.get_product(laptop["id"])["data"]["product"]["stock"])
    print("Cancel again:", c.cancel_order(order["id"]))

    # -----------------------------
    # Stock adjustment
    # -----------------------------
    print("\nAdjusting stock...")
    print(c.adjust_stock(mouse["id"], 5, "add")["data"])
    print(c.adjust_stock(mouse["id"], 100, "subtract"))

    print("\nOrder statistics:")
    print(c.order_stats()["data"])


if __name__ == "__main__":
    main()
