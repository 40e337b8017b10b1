from __future__ import annotations


def test_asset_types_and_assets_crud(client, admin_headers, user_headers):
    r = client.post("/api/asset-types", json={"name": "equity"}, headers=admin_headers)
    assert r.status_code == 201
    type_id = r.json()["id"]
    r = client.post("/api/asset-types", json={"name": "equity"}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "DUPLICATE_TYPE_NAME"

    r = client.post(
        "/api/assets",
        json={"symbol": "aapl", "name": "Apple", "asset_type_id": type_id, "sector": "Technology"},
        headers=admin_headers,
    )
    assert r.status_code == 201
    asset = r.json()
    assert asset["symbol"] == "AAPL"

    r = client.post("/api/assets", json={"symbol": "AAPL", "name": "Dup"}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "DUPLICATE_SYMBOL"
    r = client.post("/api/assets", json={"symbol": "MSFT", "name": "MS", "asset_type_id": 999}, headers=admin_headers)
    assert r.json()["detail"]["code"] == "INVALID_ASSET_TYPE"

    found = client.get("/api/assets", params={"search": "app"}, headers=user_headers).json()
    assert [a["symbol"] for a in found] == ["AAPL"]

    r = client.put(f"/api/assets/{asset['id']}", json={"current_price": 190.5}, headers=admin_headers)
    assert r.json()["current_price"] == 190.5


def test_asset_writes_require_admin(client, user_headers):
    r = client.post("/api/assets", json={"symbol": "TSLA", "name": "Tesla"}, headers=user_headers)
    assert r.status_code == 403


def test_deleting_asset_type_detaches_assets(client, admin_headers, user_headers):
    type_id = client.post("/api/asset-types", json={"name": "etf"}, headers=admin_headers).json()["id"]
    asset = client.post(
        "/api/assets", json={"symbol": "QQQ", "name": "Nasdaq", "asset_type_id": type_id}, headers=admin_headers
    ).json()
    assert client.delete(f"/api/asset-types/{type_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/assets/{asset['id']}", headers=user_headers).json()["asset_type_id"] is None
