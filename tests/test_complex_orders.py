from __future__ import annotations

import math

import pytest

TIME_VALUE_AT_100 = math.sqrt(30 / 365) * 0.30 * 100.0 * 0.4


@pytest.fixture
def option_assets(make_asset):
    return {
        "call_100": make_asset("SPY_C100", 3.0),
        "put_100": make_asset("SPY_P100", 3.0),
        "call_110": make_asset("SPY_C110", 1.0),
    }


def _complex(client, headers, account, legs, **overrides):
    body = {
        "paper_account_id": account["id"],
        "spread_type": "straddle",
        "underlying_symbol": "spy",
        "market_price": 100.0,
        "legs": legs,
    }
    body.update(overrides)
    return client.post("/api/paper-trading/orders/complex", json=body, headers=headers)


def test_long_straddle_debits_both_legs(client, user_headers, account, option_assets):
    legs = [
        {"asset_id": option_assets["call_100"]["id"], "side": "buy", "quantity": 1, "option_type": "call", "strike_price": 100},
        {"asset_id": option_assets["put_100"]["id"], "side": "buy", "quantity": 1, "option_type": "put", "strike_price": 100},
    ]
    r = _complex(client, user_headers, account, legs)
    assert r.status_code == 201, r.text
    data = r.json()

    leg_cost = TIME_VALUE_AT_100 * 1.01 * 100
    assert data["underlying_symbol"] == "SPY"
    assert len(data["legs"]) == 2
    assert data["legs"][0]["theoretical_price"] == pytest.approx(TIME_VALUE_AT_100)
    assert data["execution"]["is_debit_spread"] is True
    assert data["execution"]["net_cost"] == pytest.approx(2 * leg_cost)
    assert data["execution"]["new_cash_balance"] == pytest.approx(100_000 - 2 * leg_cost)

    positions = client.get(
        "/api/paper-trading/positions", params={"paper_account_id": account["id"]}, headers=user_headers
    ).json()
    assert sorted(p["multiplier"] for p in positions) == [100, 100]
    assert all(p["quantity"] == 1 for p in positions)


def test_credit_vertical_adds_cash_and_opens_short_leg(client, user_headers, account, option_assets):
    legs = [
        {"asset_id": option_assets["call_100"]["id"], "side": "sell", "quantity": 2, "option_type": "call", "strike_price": 100},
        {"asset_id": option_assets["call_110"]["id"], "side": "buy", "quantity": 2, "option_type": "call", "strike_price": 110},
    ]
    r = _complex(client, user_headers, account, legs, spread_type="vertical")
    assert r.status_code == 201, r.text
    execution = r.json()["execution"]
    assert execution["is_debit_spread"] is False
    assert execution["net_cost"] < 0
    assert execution["new_cash_balance"] == pytest.approx(100_000 - execution["net_cost"])

    positions = client.get(
        "/api/paper-trading/positions", params={"paper_account_id": account["id"]}, headers=user_headers
    ).json()
    by_asset = {p["asset_id"]: p for p in positions}
    assert by_asset[option_assets["call_100"]["id"]]["quantity"] == -2


def test_unaffordable_spread_writes_nothing(client, user_headers, account, option_assets):
    legs = [
        {"asset_id": option_assets["call_100"]["id"], "side": "buy", "quantity": 500, "option_type": "call"},
        {"asset_id": option_assets["put_100"]["id"], "side": "buy", "quantity": 500, "option_type": "put"},
    ]
    r = _complex(client, user_headers, account, legs)
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_FUNDS"
    assert detail["required_funds"] > detail["available_funds"] == pytest.approx(100_000)

    orders = client.get("/api/paper-trading/orders", headers=user_headers).json()
    assert orders == []
    acct = client.get(f"/api/paper-trading/accounts/{account['id']}", headers=user_headers).json()
    assert acct["cash_balance"] == pytest.approx(100_000)


def test_unknown_leg_asset_writes_nothing(client, user_headers, account, option_assets):
    legs = [
        {"asset_id": option_assets["call_100"]["id"], "side": "buy", "quantity": 1},
        {"asset_id": 9999, "side": "buy", "quantity": 1},
    ]
    r = _complex(client, user_headers, account, legs)
    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "ASSET_NOT_FOUND"
    assert client.get("/api/paper-trading/orders", headers=user_headers).json() == []


def test_empty_legs_and_unknown_spread_type_are_422(client, user_headers, account, option_assets):
    assert _complex(client, user_headers, account, []).status_code == 422
    legs = [{"asset_id": option_assets["call_100"]["id"], "side": "buy", "quantity": 1}]
    assert _complex(client, user_headers, account, legs, spread_type="collar").status_code == 422


def test_leg_positions_are_marked_at_theoretical_price(client, user_headers, account, option_assets):
    legs = [
        {"asset_id": option_assets["call_100"]["id"], "side": "buy", "quantity": 1, "option_type": "call", "strike_price": 100},
        {"asset_id": option_assets["put_100"]["id"], "side": "buy", "quantity": 1, "option_type": "put", "strike_price": 100},
    ]
    assert _complex(client, user_headers, account, legs).status_code == 201

    positions = client.get(
        "/api/paper-trading/positions", params={"paper_account_id": account["id"]}, headers=user_headers
    ).json()
    for p in positions:
        assert p["current_price"] == pytest.approx(TIME_VALUE_AT_100)
        assert p["average_cost"] == pytest.approx(TIME_VALUE_AT_100 * 1.01)
        # 1% fill spread on one contract of 100 shares
        assert p["unrealized_pnl"] == pytest.approx(-TIME_VALUE_AT_100)

    acct = client.get(f"/api/paper-trading/accounts/{account['id']}", headers=user_headers).json()
    assert acct["total_equity"] == pytest.approx(100_000 - 2 * TIME_VALUE_AT_100)
