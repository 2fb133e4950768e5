# Two buyers race for the last units of a product; exactly one order goes through.
import asyncio
import os

from souq_sdk.client import SouqClient

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin-password")

ADDRESS = {"street": "1 Market St", "city": "Amman"}


async def simulate_purchase(client: SouqClient, label: str, product_id: str, qty: int):
    r = await client.place_order_async([{"product": product_id, "quantity": qty}], ADDRESS)
    body = r.json()
    if r.status_code == 201:
        order = body["data"]["order"]
        print(f"✅ {label} bought {qty} units (order {order['order_number']}, total {order['total_amount']:.2f})")
    elif r.status_code == 409:
        print(f"❌ {label} order failed: {body.get('error')}")
    else:
        print(f"⚠️  {label} unexpected response {r.status_code}: {body}")


async def main():
    c = SouqClient(base_url=os.getenv("SOUQ_URL", "http://127.0.0.1:8085"), language="en")
    c.login(ADMIN_EMAIL, ADMIN_PASSWORD)

    category = c.create_category("Gaming", "ألعاب")["data"]["category"]
    product = c.create_product("Gaming Laptop", 5000.0, 2, category["id"], name_ar="حاسوب ألعاب")["data"]["product"]
    print(f"\n🖥️  Created product {product['sku']} with stock {product['stock']}")

    print("\n⚡ Simulating concurrent purchases...")
    await asyncio.gather(
        simulate_purchase(c, "buyer-1", product["id"], 2),
        simulate_purchase(c, "buyer-2", product["id"], 2),
    )

    print("\n📦 Final stock:", c.get_product(product["id"])["data"]["product"]["stock"])
    print("🧾 Orders:", [o["order_number"] for o in c.list_orders()["data"]["orders"]])


if __name__ == "__main__":
    asyncio.run(main())
