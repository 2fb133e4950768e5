# tests/conftest.py
import asyncio
import re
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from souq import auth
from souq.config import Settings
from souq.database import CATEGORIES, PRODUCTS, create_store
from souq.main import create_app
from souq.models import Role
from souq.notify import EmailError, Mailer
from souq.otp import InMemoryCounterStore

OTP_RE = re.compile(r"<b>(\d{6})</b>")


class RecordingMailer(Mailer):
    def __init__(self):
        self.sent: List[Dict[str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str) -> None:
        if self.fail:
            raise EmailError("mail server down")
        self.sent.append({"to": to, "subject": subject, "html": html})

    def last_otp(self, to: str) -> Optional[str]:
        for message in reversed(self.sent):
            if message["to"] == to:
                match = OTP_RE.search(message["html"])
                if match:
                    return match.group(1)
        return None


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", email_provider="console", log_level="WARNING")


@pytest.fixture
def store():
    return create_store()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def counters():
    return InMemoryCounterStore()


@pytest.fixture
def app(settings, store, mailer, counters):
    return create_app(settings=settings, store=store, mailer=mailer, counters=counters)


@pytest.fixture
def client(app):
    return TestClient(app)


def make_user(store, email: str = "alice@example.com", role: Role = Role.USER, name: str = "Alice",
              password: str = "password123", verified: bool = True) -> Dict[str, Any]:
    return asyncio.run(auth.create_user(store, name, email, password, role=role, is_verified=verified))


def bearer(user: Dict[str, Any], settings: Settings) -> Dict[str, str]:
    return {"Authorization": f"Bearer {auth.create_access_token(user['id'], settings)}"}


@pytest.fixture
def admin(store):
    return make_user(store, "admin@example.com", Role.ADMIN, name="Admin")


@pytest.fixture
def customer(store):
    return make_user(store, "alice@example.com")


@pytest.fixture
def admin_headers(admin, settings):
    return bearer(admin, settings)


@pytest.fixture
def customer_headers(customer, settings):
    return bearer(customer, settings)


def seed_category(store, created_by: str, en: str = "Electronics", ar: str = "إلكترونيات") -> Dict[str, Any]:
    doc = {
        "name": {"en": en, "ar": ar},
        "description": {"en": None, "ar": None},
        "slug": en.lower(),
        "is_active": True,
        "sort_order": 0,
        "created_by": created_by,
    }
    return asyncio.run(store.insert_one(CATEGORIES, doc))


def seed_product(store, created_by: str, category_id: str, stock: int = 5, price: float = 10.0,
                 en: str = "Phone", ar: Optional[str] = "هاتف", sku: Optional[str] = None,
                 is_active: bool = True, **extra) -> Dict[str, Any]:
    doc = {
        "name": {"en": en, "ar": ar},
        "description": {"en": None, "ar": None},
        "brand": None,
        "price": price,
        "stock": stock,
        "sku": sku or f"{en.upper()}-{stock}-{int(price)}",
        "category": category_id,
        "unit_weight": None,
        "is_active": is_active,
        "created_by": created_by,
        "production_date": None,
        "expiry_date": None,
    }
    doc.update(extra)
    return asyncio.run(store.insert_one(PRODUCTS, doc))


@pytest.fixture
def category(store, admin):
    return seed_category(store, admin["id"])


def stock_of(store, product_id: str) -> int:
    return asyncio.run(store.get(PRODUCTS, product_id))["stock"]


ADDRESS = {"street": "1 Market St", "city": "Amman"}
