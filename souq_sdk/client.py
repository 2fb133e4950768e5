# souq_sdk/client.py
from typing import Any, Dict, List, Optional

import httpx
import requests
from rich import print


class SouqClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8085",
        token: Optional[str] = None,
        language: Optional[str] = None,
        timeout: int = 10,
    ):
        self.base_url = base_url.rstrip("/")
        self.api = f"{self.base_url}/api/v1"
        self.session = requests.Session()
        self.timeout = timeout
        self.token = None
        if token:
            self.set_token(token)
        if language:
            self.session.headers.update({"Accept-Language": language})

    def set_token(self, token: Optional[str]):
        self.token = token
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})
        else:
            self.session.headers.pop("Authorization", None)

    def _request(self, method: str, path: str, raise_errors: bool = True, **kwargs) -> Dict[str, Any]:
        r = self.session.request(method, f"{self.api}{path}", timeout=self.timeout, **kwargs)
        if raise_errors:
            r.raise_for_status()
        return r.json()

    def health(self):
        r = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    # Auth
    def register(self, name: str, email: str, password: str):
        return self._request("POST", "/auth/register", json={"name": name, "email": email, "password": password})

    def verify_email(self, email: str, otp: str):
        body = self._request("POST", "/auth/verify-email", json={"email": email, "otp": otp})
        self.set_token(body["data"]["token"])
        return body

    def resend_verification(self, email: str):
        return self._request("POST", "/auth/resend-verification", json={"email": email})

    def login(self, email: str, password: str):
        body = self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.set_token(body["data"]["token"])
        return body

    def forgot_password(self, email: str):
        return self._request("POST", "/auth/forgot-password", json={"email": email})

    def reset_password(self, email: str, otp: str, new_password: str):
        return self._request("POST", "/auth/reset-password", json={"email": email, "otp": otp, "new_password": new_password})

    def profile(self):
        return self._request("GET", "/auth/profile")

    def change_password(self, current_password: str, new_password: str):
        return self._request("PUT", "/auth/change-password", json={
            "current_password": current_password, "new_password": new_password,
        })

    def logout(self):
        body = self._request("POST", "/auth/logout")
        self.set_token(None)
        return body

    # Categories
    def list_categories(self, search: Optional[str] = None):
        params = {"search": search} if search else {}
        return self._request("GET", "/categories", params=params)

    def create_category(self, name: str, name_ar: str, description: Optional[str] = None,
                        description_ar: Optional[str] = None, sort_order: int = 0):
        return self._request("POST", "/categories", json={
            "name": name, "name_ar": name_ar, "description": description,
            "description_ar": description_ar, "sort_order": sort_order,
        })

    # Products
    def create_product(self, name: str, price: float, stock: int, category: str,
                       name_ar: Optional[str] = None, sku: Optional[str] = None, **extra):
        payload = {"name": name, "name_ar": name_ar, "price": price, "stock": stock, "category": category}
        if sku:
            payload["sku"] = sku
        payload.update(extra)
        return self._request("POST", "/products", json=payload)

    def list_products(self, category: Optional[str] = None, in_stock: Optional[bool] = None, page: int = 1, limit: int = 10):
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if category:
            params["category"] = category
        if in_stock is not None:
            params["in_stock"] = "true" if in_stock else "false"
        return self._request("GET", "/products", params=params)

    def search_products(self, term: str):
        return self._request("GET", "/products/search", params={"q": term})

    def get_product(self, product_id: str):
        return self._request("GET", f"/products/{product_id}")

    def adjust_stock(self, product_id: str, stock: int, operation: str = "set"):
        # do not raise: callers inspect 409 when subtracting too much
        return self._request("PATCH", f"/products/{product_id}/stock", raise_errors=False,
                             json={"stock": stock, "operation": operation})

    # Orders
    def _order_payload(self, items: List[Dict[str, Any]], shipping_address: Dict[str, Any],
                       payment_method: str, notes: Optional[str]) -> Dict[str, Any]:
        return {
            "items": items,
            "shipping_address": shipping_address,
            "payment_method": payment_method,
            "notes": notes,
        }

    def place_order(self, items: List[Dict[str, Any]], shipping_address: Dict[str, Any],
                    payment_method: str = "cash_on_delivery", notes: Optional[str] = None):
        # do not raise_for_status: callers may want to inspect 400/404/409
        return self._request("POST", "/orders", raise_errors=False,
                             json=self._order_payload(items, shipping_address, payment_method, notes))

    async def place_order_async(self, items: List[Dict[str, Any]], shipping_address: Dict[str, Any],
                                payment_method: str = "cash_on_delivery", notes: Optional[str] = None):
        async with httpx.AsyncClient(timeout=self.timeout, headers=dict(self.session.headers)) as client:
            r = await client.post(f"{self.api}/orders",
                                  json=self._order_payload(items, shipping_address, payment_method, notes))
            return r

    def list_orders(self, status: Optional[str] = None, page: int = 1, limit: int = 10):
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        return self._request("GET", "/orders", params=params)

    def get_order(self, order_id: str):
        return self._request("GET", f"/orders/{order_id}")

    def cancel_order(self, order_id: str):
        return self._request("PATCH", f"/orders/{order_id}/cancel", raise_errors=False)

    def update_order_status(self, order_id: str, status: str):
        return self._request("PUT", f"/orders/{order_id}/status", raise_errors=False, json={"status": status})

    def order_stats(self):
        return self._request("GET", "/orders/admin/stats")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="souq API client")
    parser.add_argument("--base-url", default="http://127.0.0.1:8085")
    parser.add_argument("--token", help="Bearer token from login")
    parser.add_argument("--lang", choices=["en", "ar"], help="Accept-Language to send")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lg = subparsers.add_parser("login", help="Log in and print the token")
    lg.add_argument("--email", required=True)
    lg.add_argument("--password", required=True)

    lp = subparsers.add_parser("list-products", help="List active products")
    lp.add_argument("--category", help="Filter by category id")
    lp.add_argument("--in-stock", action="store_true", help="Only products with stock")

    sp = subparsers.add_parser("search", help="Search products")
    sp.add_argument("--term", required=True)

    gp = subparsers.add_parser("get-product", help="Get a product by id")
    gp.add_argument("--product-id", required=True)

    st = subparsers.add_parser("adjust-stock", help="Add, subtract or set product stock")
    st.add_argument("--product-id", required=True)
    st.add_argument("--stock", type=int, required=True)
    st.add_argument("--operation", choices=["add", "subtract", "set"], default="set")

    po = subparsers.add_parser("place-order", help="Order one product")
    po.add_argument("--product-id", required=True)
    po.add_argument("--qty", type=int, default=1)
    po.add_argument("--street", required=True)
    po.add_argument("--city", required=True)

    subparsers.add_parser("list-orders", help="List my orders")

    co = subparsers.add_parser("cancel-order", help="Cancel an order")
    co.add_argument("--order-id", required=True)

    us = subparsers.add_parser("update-status", help="Move an order to a new status (admin)")
    us.add_argument("--order-id", required=True)
    us.add_argument("--status", required=True)

    args = parser.parse_args()
    c = SouqClient(base_url=args.base_url, token=args.token, language=args.lang)

    if args.command == "login":
        print(c.login(args.email, args.password))
    elif args.command == "list-products":
        print(c.list_products(args.category, True if args.in_stock else None))
    elif args.command == "search":
        print(c.search_products(args.term))
    elif args.command == "get-product":
        print(c.get_product(args.product_id))
    elif args.command == "adjust-stock":
        print(c.adjust_stock(args.product_id, args.stock, args.operation))
    elif args.command == "place-order":
        print(c.place_order([{"product": args.product_id, "quantity": args.qty}],
                            {"street": args.street, "city": args.city}))
    elif args.command == "list-orders":
        print(c.list_orders())
    elif args.command == "cancel-order":
        print(c.cancel_order(args.order_id))
    elif args.command == "update-status":
        print(c.update_order_status(args.order_id, args.status))
