from __future__ import annotations

from .conftest import PASSWORD, register


def test_non_admin_is_forbidden(client, user_headers):
    r = client.get("/api/admin/users", headers=user_headers)
    assert r.status_code == 403
    assert r.json()["detail"]["code"] == "FORBIDDEN"


def test_user_listing_search_and_update(client, admin_headers, user_headers):
    users = client.get("/api/admin/users", params={"search": "trader"}, headers=admin_headers).json()
    assert [u["email"] for u in users] == ["trader@example.com"]
    user_id = users[0]["id"]

    r = client.put(f"/api/admin/users/{user_id}", json={"is_admin": True}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["is_admin"] is True
    assert client.get("/api/admin/overview", headers=user_headers).status_code == 200


def test_admin_cannot_demote_or_delete_self(client, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json()
    r = client.put(f"/api/admin/users/{me['id']}", json={"is_admin": False}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "CANNOT_DEMOTE_SELF"
    r = client.delete(f"/api/admin/users/{me['id']}", headers=admin_headers)
    assert r.json()["detail"]["code"] == "CANNOT_DELETE_SELF"


def test_deleting_a_user_removes_their_sessions_and_accounts(client, admin_headers, user_headers, account):
    user_id = client.get("/api/auth/me", headers=user_headers).json()["id"]
    assert client.delete(f"/api/admin/users/{user_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/auth/me", headers=user_headers).status_code == 401
    assert client.get(f"/api/paper-trading/accounts/{account['id']}", headers=admin_headers).status_code == 404


def test_password_reset_by_admin(client, admin_headers):
    user = register(client, "reset@example.com")["user"]
    r = client.post(f"/api/admin/users/{user['id']}/password", json={"new_password": "abc"}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "INVALID_PASSWORD_LENGTH"
    r = client.post(
        f"/api/admin/users/{user['id']}/password", json={"new_password": "brand-new"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert client.post("/api/auth/login", json={"email": "reset@example.com", "password": PASSWORD}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "reset@example.com", "password": "brand-new"}).status_code == 200


def test_invite_code_management(client, admin_headers):
    r = client.post("/api/admin/invite-codes", json={"max_uses": 3}, headers=admin_headers)
    assert r.status_code == 201
    generated = r.json()
    assert len(generated["code"]) >= 4
    assert generated["current_uses"] == 0

    r = client.post("/api/admin/invite-codes", json={"code": generated["code"]}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "DUPLICATE_CODE"

    r = client.put(f"/api/admin/invite-codes/{generated['id']}", json={"max_uses": 10}, headers=admin_headers)
    assert r.json()["max_uses"] == 10

    assert client.delete(f"/api/admin/invite-codes/{generated['id']}", headers=admin_headers).status_code == 200
    r = client.delete(f"/api/admin/invite-codes/{generated['id']}", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "INVITE_CODE_NOT_FOUND"


def test_overview_counts(client, admin_headers, user_headers, account):
    data = client.get("/api/admin/overview", headers=admin_headers).json()
    assert data["users"] == 2
    assert data["admins"] == 1
    assert data["active_paper_accounts"] == 1
    assert data["filled_paper_orders"] == 0
