from __future__ import annotations

from datetime import timedelta

import pytest

from options_desk.common.timeutils import utc_now
from options_desk.config import reset_settings_cache
from options_desk.invites import evaluate_invite
from options_desk.models import InviteCode

from .conftest import PASSWORD, auth_headers, register


@pytest.fixture
def invite_only(app_env):
    app_env.setenv("REQUIRE_INVITE_CODE", "true")
    reset_settings_cache()


def _create_invite(client, admin_headers, **body) -> dict:
    r = client.post("/api/admin/invite-codes", json=body, headers=admin_headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_register_login_me_logout(client):
    session = register(client, "Trader@Example.com")
    assert session["user"]["email"] == "trader@example.com"
    assert session["user"]["is_admin"] is False
    assert "password_hash" not in session["user"]

    r = client.post("/api/auth/login", json={"email": "trader@example.com", "password": PASSWORD})
    assert r.status_code == 200
    headers = auth_headers(r.json()["access_token"])

    assert client.get("/api/auth/me", headers=headers).json()["email"] == "trader@example.com"
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    r = client.get("/api/auth/me", headers=headers)
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "SESSION_INVALID"


def test_register_rejects_duplicate_email_and_short_password(client):
    register(client, "dup@example.com")
    r = client.post("/api/auth/register", json={"name": "x", "email": "dup@example.com", "password": PASSWORD})
    assert r.json()["detail"]["code"] == "EMAIL_EXISTS"
    r = client.post("/api/auth/register", json={"name": "x", "email": "new@example.com", "password": "123"})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_PASSWORD_LENGTH"


def test_login_with_wrong_password_is_401(client):
    register(client, "trader@example.com")
    r = client.post("/api/auth/login", json={"email": "trader@example.com", "password": "wrong-one"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "INVALID_CREDENTIALS"


def test_password_change_flow(client, user_headers):
    r = client.post(
        "/api/auth/password",
        json={"current_password": "nope-nope", "new_password": "another1"},
        headers=user_headers,
    )
    assert r.json()["detail"]["code"] == "INVALID_PASSWORD"
    r = client.post(
        "/api/auth/password",
        json={"current_password": PASSWORD, "new_password": PASSWORD},
        headers=user_headers,
    )
    assert r.json()["detail"]["code"] == "PASSWORD_UNCHANGED"
    r = client.post(
        "/api/auth/password",
        json={"current_password": PASSWORD, "new_password": "another1"},
        headers=user_headers,
    )
    assert r.status_code == 200
    r = client.post("/api/auth/login", json={"email": "trader@example.com", "password": "another1"})
    assert r.status_code == 200


def test_malformed_authorization_header(client):
    r = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "INVALID_AUTH_HEADER"


def test_registration_requires_invite_when_enabled(client, admin_headers, invite_only):
    r = client.post("/api/auth/register", json={"name": "x", "email": "a@example.com", "password": PASSWORD})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "MISSING_CODE"

    r = client.post(
        "/api/auth/register",
        json={"name": "x", "email": "a@example.com", "password": PASSWORD, "invite_code": "NOPE1234"},
    )
    assert r.json()["detail"]["code"] == "CODE_NOT_FOUND"

    invite = _create_invite(client, admin_headers, code="WELCOME1", max_uses=1)
    session = register(client, "a@example.com", invite_code="WELCOME1")

    codes = client.get("/api/admin/invite-codes", headers=admin_headers).json()
    used = next(c for c in codes if c["id"] == invite["id"])
    assert used["current_uses"] == 1
    assert used["used_by_user_id"] == session["user"]["id"]

    r = client.post(
        "/api/auth/register",
        json={"name": "y", "email": "b@example.com", "password": PASSWORD, "invite_code": "WELCOME1"},
    )
    assert r.json()["detail"]["code"] == "CODE_MAX_USES_REACHED"


def test_validate_endpoint_reports_reason(client, admin_headers):
    _create_invite(client, admin_headers, code="OPENDOOR", max_uses=3)
    r = client.post("/api/invite-codes/validate", json={"code": "OPENDOOR"})
    assert r.status_code == 200
    assert r.json() == {"valid": True, "code": "OPENDOOR", "message": "Invite code is valid"}

    r = client.post("/api/invite-codes/validate", json={"code": "   "})
    assert r.status_code == 400
    assert r.json()["reason"] == "INVALID_CODE"

    r = client.post("/api/invite-codes/validate", json={})
    assert r.status_code == 400
    assert r.json() == {"valid": False, "reason": "MISSING_CODE", "message": "Invite code is required"}


def test_consume_counts_a_use(client, admin_headers, user_headers):
    invite = _create_invite(client, admin_headers, code="TWOUSES1", max_uses=2)
    r = client.post("/api/invite-codes/consume", json={"code": "TWOUSES1"}, headers=user_headers)
    assert r.status_code == 200
    assert r.json()["remaining_uses"] == 1

    client.put(
        f"/api/admin/invite-codes/{invite['id']}",
        json={"is_active": False},
        headers=admin_headers,
    )
    r = client.post("/api/invite-codes/consume", json={"code": "TWOUSES1"}, headers=user_headers)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "CODE_INACTIVE"


def test_evaluate_invite_checks_in_order():
    now = utc_now()
    assert evaluate_invite(None).reason == "CODE_NOT_FOUND"

    expired_and_inactive = InviteCode(code="X", is_active=False, max_uses=1, current_uses=0, expires_at=now - timedelta(days=1))
    assert evaluate_invite(expired_and_inactive, now=now).reason == "CODE_INACTIVE"

    expired = InviteCode(code="X", is_active=True, max_uses=1, current_uses=1, expires_at=now - timedelta(seconds=1))
    assert evaluate_invite(expired, now=now).reason == "CODE_EXPIRED"

    used_up = InviteCode(code="X", is_active=True, max_uses=1, current_uses=1, expires_at=None)
    assert evaluate_invite(used_up, now=now).reason == "CODE_MAX_USES_REACHED"

    ok = InviteCode(code="X", is_active=True, max_uses=2, current_uses=1, expires_at=now + timedelta(days=1))
    assert evaluate_invite(ok, now=now).valid is True
