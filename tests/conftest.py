from __future__ import annotations

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from options_desk.app import create_app
from options_desk.config import reset_settings_cache
from options_desk.db import reset_engine

ADMIN_EMAIL = "admin@example.com"
PASSWORD = "hunter22"


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, email: str, *, name: str = "Trader", invite_code: str | None = None) -> dict:
    body = {"name": name, "email": email, "password": PASSWORD}
    if invite_code is not None:
        body["invite_code"] = invite_code
    r = client.post("/api/auth/register", json=body)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def app_env(monkeypatch):
    # In-memory SQLite shared through a static pool.
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("REQUIRE_INVITE_CODE", "false")
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    for k in ("APCA_API_KEY_ID", "APCA_API_SECRET_KEY", "APCA_DATA_URL", "APCA_API_BASE_URL"):
        monkeypatch.delenv(k, raising=False)
    reset_settings_cache()
    reset_engine()
    yield monkeypatch
    reset_engine()
    reset_settings_cache()


@pytest.fixture
def client(app_env):
    with TestClient(create_app()) as c:
        yield c


@pytest.fixture
def user_headers(client) -> Dict[str, str]:
    return auth_headers(register(client, "trader@example.com")["access_token"])


@pytest.fixture
def other_headers(client) -> Dict[str, str]:
    return auth_headers(register(client, "other@example.com", name="Other")["access_token"])


@pytest.fixture
def admin_headers(client) -> Dict[str, str]:
    session = register(client, ADMIN_EMAIL, name="Admin")
    assert session["user"]["is_admin"] is True
    return auth_headers(session["access_token"])


@pytest.fixture
def make_asset(client, admin_headers):
    def _make(symbol: str = "SPY", price: float = 450.0, **extra) -> dict:
        r = client.post(
            "/api/assets",
            json={"symbol": symbol, "name": f"{symbol} Inc", "current_price": price, **extra},
            headers=admin_headers,
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _make


@pytest.fixture
def asset(make_asset) -> dict:
    return make_asset()


@pytest.fixture
def account(client, user_headers) -> dict:
    r = client.post(
        "/api/paper-trading/accounts/initialize",
        json={"initial_balance": 100_000},
        headers=user_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["account"]
