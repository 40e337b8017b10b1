from __future__ import annotations

import pytest


def _execute(client, headers, account_id, asset_id, side, price, quantity=10):
    r = client.post(
        "/api/paper-trading/orders/execute",
        json={
            "paper_account_id": account_id,
            "asset_id": asset_id,
            "order_type": "market",
            "side": side,
            "quantity": quantity,
            "market_price": price,
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_initialize_uses_default_balance(client, user_headers):
    r = client.post("/api/paper-trading/accounts/initialize", headers=user_headers)
    assert r.status_code == 201, r.text
    account = r.json()["account"]
    assert account["initial_balance"] == 100_000
    assert account["cash_balance"] == 100_000
    assert account["total_pnl"] == 0


@pytest.mark.parametrize("balance", [999, 10_000_001])
def test_initialize_rejects_out_of_range_balance(client, user_headers, balance):
    r = client.post(
        "/api/paper-trading/accounts/initialize", json={"initial_balance": balance}, headers=user_headers
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_INITIAL_BALANCE"


def test_initialize_twice_reports_existing_account(client, user_headers, account):
    r = client.post("/api/paper-trading/accounts/initialize", headers=user_headers)
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["code"] == "ACCOUNT_ALREADY_EXISTS"
    assert detail["account_id"] == account["id"]


def test_accounts_are_scoped_to_owner_but_visible_to_admin(client, user_headers, other_headers, admin_headers, account):
    assert client.get(f"/api/paper-trading/accounts/{account['id']}", headers=other_headers).status_code == 404
    assert client.get("/api/paper-trading/accounts", headers=other_headers).json() == []
    assert client.get(f"/api/paper-trading/accounts/{account['id']}", headers=admin_headers).status_code == 200
    all_accounts = client.get("/api/paper-trading/accounts", headers=admin_headers).json()
    assert [a["id"] for a in all_accounts] == [account["id"]]


def test_reset_restores_balance_and_cancels_only_open_orders(client, user_headers, account, asset):
    _execute(client, user_headers, account["id"], asset["id"], "buy", 100.0)
    r = client.post(
        "/api/paper-trading/orders",
        json={
            "paper_account_id": account["id"],
            "asset_id": asset["id"],
            "order_type": "limit",
            "side": "buy",
            "quantity": 5,
            "limit_price": 90.0,
        },
        headers=user_headers,
    )
    assert r.status_code == 201
    pending_id = r.json()["id"]

    r = client.post(f"/api/paper-trading/accounts/{account['id']}/reset", headers=user_headers)
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["deleted_positions"] == 1
    assert data["canceled_orders"] == 1
    assert data["account"]["cash_balance"] == 100_000
    assert data["account"]["total_equity"] == 100_000

    statuses = {
        o["id"]: o["status"]
        for o in client.get("/api/paper-trading/orders", headers=user_headers).json()
    }
    assert statuses[pending_id] == "canceled"
    assert sorted(statuses.values()) == ["canceled", "filled"]


def test_history_paginates_and_scores_round_trips(client, user_headers, account, make_asset):
    winner = make_asset("AAA", 10.0)
    loser = make_asset("BBB", 10.0)
    _execute(client, user_headers, account["id"], winner["id"], "buy", 10.0)
    _execute(client, user_headers, account["id"], winner["id"], "sell", 12.0)
    _execute(client, user_headers, account["id"], loser["id"], "buy", 10.0)
    _execute(client, user_headers, account["id"], loser["id"], "sell", 8.0)

    r = client.get(
        f"/api/paper-trading/accounts/{account['id']}/history",
        params={"limit": 3},
        headers=user_headers,
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert len(data["orders"]) == 3
    assert data["pagination"] == {"total": 4, "limit": 3, "offset": 0, "has_more": True}

    summary = data["pnl_summary"]
    assert summary["total_trades"] == 4
    assert summary["winning_trades"] == 1
    assert summary["losing_trades"] == 1
    assert summary["win_rate"] == 25.0
    assert summary["total_commission"] == pytest.approx(2.0)
    assert summary["net_pnl"] == pytest.approx(summary["total_pnl"] - 2.0)

    sells = client.get(
        f"/api/paper-trading/accounts/{account['id']}/history",
        params={"side": "sell"},
        headers=user_headers,
    ).json()
    assert {o["symbol"] for o in sells["orders"]} == {"AAA", "BBB"}
    assert all(o["side"] == "sell" for o in sells["orders"])


def test_history_rejects_inverted_date_range(client, user_headers, account):
    r = client.get(
        f"/api/paper-trading/accounts/{account['id']}/history",
        params={"start_date": "2024-02-01T00:00:00Z", "end_date": "2024-01-01T00:00:00Z"},
        headers=user_headers,
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "INVALID_DATE_RANGE"


def test_cancel_only_applies_to_open_orders(client, user_headers, account, asset):
    filled = _execute(client, user_headers, account["id"], asset["id"], "buy", 100.0)["order"]
    r = client.post(f"/api/paper-trading/orders/{filled['id']}/cancel", headers=user_headers)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "ORDER_NOT_CANCELABLE"


def test_order_update_validates_filled_quantity(client, user_headers, account, asset):
    r = client.post(
        "/api/paper-trading/orders",
        json={
            "paper_account_id": account["id"],
            "asset_id": asset["id"],
            "order_type": "market",
            "side": "buy",
            "quantity": 5,
        },
        headers=user_headers,
    )
    order_id = r.json()["id"]
    r = client.put(f"/api/paper-trading/orders/{order_id}", json={"filled_quantity": 6}, headers=user_headers)
    assert r.json()["detail"]["code"] == "FILLED_QUANTITY_EXCEEDS_QUANTITY"
    r = client.put(
        f"/api/paper-trading/orders/{order_id}",
        json={"status": "filled", "filled_quantity": 5, "filled_price": 101.0},
        headers=user_headers,
    )
    assert r.status_code == 200
    assert r.json()["filled_at"] is not None


def test_null_updates_leave_required_fields_alone(client, user_headers, account, asset):
    order = client.post(
        "/api/paper-trading/orders",
        json={
            "paper_account_id": account["id"],
            "asset_id": asset["id"],
            "order_type": "limit",
            "side": "buy",
            "quantity": 5,
            "limit_price": 90.0,
        },
        headers=user_headers,
    ).json()
    r = client.put(
        f"/api/paper-trading/orders/{order['id']}",
        json={"status": None, "filled_quantity": None, "limit_price": None},
        headers=user_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "pending"
    assert r.json()["filled_quantity"] == 0
    assert r.json()["limit_price"] is None

    position = _execute(client, user_headers, account["id"], asset["id"], "buy", 100.0)["position"]
    r = client.put(
        f"/api/paper-trading/positions/{position['id']}",
        json={"average_cost": None, "quantity": None, "current_price": 105.0},
        headers=user_headers,
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["average_cost"] == pytest.approx(100.10)
    assert data["quantity"] == 10
    assert data["unrealized_pnl"] == pytest.approx((105.0 - 100.10) * 10)
