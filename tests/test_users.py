from conftest import bearer, make_user
from souq.database import USERS


def test_users_are_admin_only(client, customer_headers):
    assert client.get("/api/v1/users", headers=customer_headers).status_code == 403
    assert client.get("/api/v1/users/stats", headers=customer_headers).status_code == 403


def test_list_and_filter_users(client, store, admin, customer, admin_headers):
    make_user(store, "bob@example.com", name="Bob", verified=False)

    body = client.get("/api/v1/users?sort_by=email&sort_order=asc", headers=admin_headers).json()["data"]
    assert [u["email"] for u in body["users"]] == ["admin@example.com", "alice@example.com", "bob@example.com"]
    assert body["pagination"]["total_items"] == 3
    assert all("password_hash" not in u for u in body["users"])

    body = client.get("/api/v1/users?role=admin", headers=admin_headers).json()["data"]
    assert [u["id"] for u in body["users"]] == [admin["id"]]

    body = client.get("/api/v1/users?is_verified=false", headers=admin_headers).json()["data"]
    assert [u["email"] for u in body["users"]] == ["bob@example.com"]

    body = client.get("/api/v1/users?search=ALI", headers=admin_headers).json()["data"]
    assert [u["id"] for u in body["users"]] == [customer["id"]]


def test_get_role_and_status(client, store, customer, admin_headers, settings):
    url = f"/api/v1/users/{customer['id']}"
    assert client.get(url, headers=admin_headers).json()["data"]["user"]["email"] == "alice@example.com"
    assert client.get("/api/v1/users/missing", headers=admin_headers).status_code == 404

    r = client.put(f"{url}/role", json={"role": "admin"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["user"]["role"] == "admin"
    assert client.put(f"{url}/role", json={"role": "owner"}, headers=admin_headers).status_code == 400

    r = client.put(f"{url}/status", json={"is_active": False}, headers={**admin_headers, "Accept-Language": "en"})
    assert r.status_code == 200
    assert r.json()["message"] == "User deactivated successfully"

    # a deactivated account can no longer use its token
    assert client.get("/api/v1/auth/profile", headers=bearer(customer, settings)).status_code == 401


def test_admin_cannot_act_on_self(client, admin, admin_headers):
    url = f"/api/v1/users/{admin['id']}"
    assert client.put(f"{url}/role", json={"role": "user"}, headers=admin_headers).status_code == 400
    assert client.put(f"{url}/status", json={"is_active": False}, headers=admin_headers).status_code == 400
    assert client.delete(url, headers=admin_headers).status_code == 400


def test_delete_user_is_soft(client, store, customer, admin_headers):
    url = f"/api/v1/users/{customer['id']}"
    assert client.delete(url, headers=admin_headers).status_code == 200

    stored = store._docs(USERS)[customer["id"]]
    assert stored["deleted_at"] is not None
    assert stored["is_active"] is False
    assert client.get(url, headers=admin_headers).status_code == 404
    assert client.delete(url, headers=admin_headers).status_code == 404

    users = client.get("/api/v1/users", headers=admin_headers).json()["data"]["users"]
    assert customer["id"] not in [u["id"] for u in users]

    r = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert r.status_code == 401


def test_user_statistics(client, store, admin, customer, admin_headers):
    make_user(store, "bob@example.com", name="Bob", verified=False)
    stats = client.get("/api/v1/users/stats", headers=admin_headers).json()["data"]
    assert stats["total_users"] == 3
    assert stats["verified_users"] == 2
    assert stats["unverified_users"] == 1
    assert stats["active_users"] == 3
    assert stats["users_by_role"] == {"user": 2, "admin": 1}
    assert stats["recent_users"] == 3
