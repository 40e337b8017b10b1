from __future__ import annotations

import pytest


@pytest.fixture
def strategy(client, user_headers) -> dict:
    r = client.post(
        "/api/strategies",
        json={"name": "Iron condor weekly", "strategy_type": "iron_condor", "parameters": {"width": 5}},
        headers=user_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def backtest(client, user_headers, strategy) -> dict:
    r = client.post(
        "/api/backtests",
        json={
            "name": "2023 run",
            "strategy_id": strategy["id"],
            "start_date": "2023-01-01T00:00:00Z",
            "end_date": "2023-12-31T00:00:00Z",
            "initial_capital": 50_000,
        },
        headers=user_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_strategy_crud_and_ownership(client, user_headers, other_headers, strategy):
    assert strategy["parameters"] == {"width": 5}
    assert strategy["performance"] == {}

    r = client.post("/api/strategies", json={"name": "   "}, headers=user_headers)
    assert r.json()["detail"]["code"] == "INVALID_NAME"

    r = client.put(f"/api/strategies/{strategy['id']}", json={"performance": {"sharpe": 1.2}}, headers=user_headers)
    assert r.json()["performance"] == {"sharpe": 1.2}

    assert client.get(f"/api/strategies/{strategy['id']}", headers=other_headers).status_code == 404
    assert client.get("/api/strategies", headers=other_headers).json() == []


def test_personal_rows_stay_private_from_admins(client, admin_headers, strategy):
    assert client.get(f"/api/strategies/{strategy['id']}", headers=admin_headers).status_code == 404
    r = client.delete(f"/api/strategies/{strategy['id']}", headers=admin_headers)
    assert r.json()["detail"]["code"] == "STRATEGY_NOT_FOUND"


def test_strategy_list_sorting(client, user_headers, strategy):
    client.post("/api/strategies", json={"name": "Alpha"}, headers=user_headers)
    names = [s["name"] for s in client.get("/api/strategies", params={"sort_by": "name", "order": "asc"}, headers=user_headers).json()]
    assert names == ["Alpha", "Iron condor weekly"]


def test_backtest_requires_owned_strategy_and_valid_range(client, user_headers, other_headers, strategy):
    body = {
        "name": "bad",
        "strategy_id": strategy["id"],
        "start_date": "2023-06-01T00:00:00Z",
        "end_date": "2023-01-01T00:00:00Z",
        "initial_capital": 1000,
    }
    r = client.post("/api/backtests", json=body, headers=user_headers)
    assert r.json()["detail"]["code"] == "INVALID_DATE_RANGE"
    r = client.post("/api/backtests", json=body, headers=other_headers)
    assert r.json()["detail"]["code"] == "STRATEGY_NOT_FOUND"


def test_completing_a_backtest_stamps_completed_at(client, user_headers, backtest):
    assert backtest["status"] == "running"
    assert backtest["completed_at"] is None
    r = client.put(
        f"/api/backtests/{backtest['id']}",
        json={"status": "completed", "final_capital": 55_000, "total_return": 5_000},
        headers=user_headers,
    )
    assert r.status_code == 200
    assert r.json()["completed_at"] is not None


def test_backtest_trades_and_summary(client, user_headers, backtest):
    trades = [
        {"symbol": "spy", "trade_type": "OPTION", "side": "BUY", "quantity": 1, "entry_price": 2.0,
         "entry_time": "2023-02-01T15:00:00Z", "pnl": 300.0, "commission": 1.0, "exit_reason": "PROFIT_TARGET"},
        {"symbol": "SPY", "trade_type": "OPTION", "side": "BUY", "quantity": 1, "entry_price": 2.0,
         "entry_time": "2023-03-01T15:00:00Z", "pnl": -100.0, "commission": 1.0, "exit_reason": "STOP_LOSS"},
        {"symbol": "QQQ", "trade_type": "STOCK", "side": "SELL", "quantity": 10, "entry_price": 300.0,
         "entry_time": "2023-04-01T15:00:00Z", "pnl": 100.0},
    ]
    r = client.post(f"/api/backtests/{backtest['id']}/trades", json=trades, headers=user_headers)
    assert r.status_code == 201, r.text
    assert r.json()[0]["symbol"] == "SPY"

    spy = client.get(f"/api/backtests/{backtest['id']}/trades", params={"symbol": "SPY"}, headers=user_headers).json()
    assert len(spy) == 2

    summary = client.get(f"/api/backtests/{backtest['id']}/summary", headers=user_headers).json()["trades"]
    assert summary["trade_count"] == 3
    assert summary["winning_trades"] == 2
    assert summary["losing_trades"] == 1
    assert summary["profit_factor"] == pytest.approx(4.0)
    assert summary["total_pnl"] == pytest.approx(300.0)
    assert summary["total_commission"] == pytest.approx(2.0)


def test_daily_metrics_upsert_by_date(client, user_headers, backtest):
    url = f"/api/backtests/{backtest['id']}/metrics"
    r = client.post(
        url,
        json=[
            {"date": "2023-01-03", "equity": 50_100, "cash": 40_000},
            {"date": "2023-01-04", "equity": 50_300, "cash": 40_000},
        ],
        headers=user_headers,
    )
    assert r.status_code == 201, r.text
    r = client.post(url, json=[{"date": "2023-01-04", "equity": 49_900, "cash": 39_000}], headers=user_headers)
    assert r.status_code == 201

    metrics = client.get(url, headers=user_headers).json()
    assert [m["date"] for m in metrics] == ["2023-01-03", "2023-01-04"]
    assert metrics[1]["equity"] == 49_900

    only_second = client.get(url, params={"start_date": "2023-01-04"}, headers=user_headers).json()
    assert len(only_second) == 1

    r = client.get(url, params={"start_date": "2023-13-40"}, headers=user_headers)
    assert r.json()["detail"]["code"] == "INVALID_DATE_FORMAT"


def test_deleting_strategy_removes_its_backtests(client, user_headers, strategy, backtest):
    assert client.delete(f"/api/strategies/{strategy['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/api/backtests/{backtest['id']}", headers=user_headers).status_code == 404
