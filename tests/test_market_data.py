from __future__ import annotations

import httpx
import pytest
from tenacity import wait_none

from options_desk.market_data import AlpacaQuoteClient, QuoteNotFound, UpstreamError, get_quote_client


def _client(handler) -> AlpacaQuoteClient:
    return AlpacaQuoteClient(
        key_id="key",
        secret_key="secret",
        data_url="https://data.example.test",
        wait=wait_none(),
        transport=httpx.MockTransport(handler),
    )


def _quote_body(bp=449.9, ap=450.1):
    return {"symbol": "SPY", "quote": {"bp": bp, "ap": ap, "bs": 3, "as": 5, "t": "2024-01-02T15:30:00.123456789Z"}}


def test_latest_quote_parses_and_sends_auth_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["feed"] = request.url.params.get("feed")
        seen["key"] = request.headers.get("APCA-API-KEY-ID")
        return httpx.Response(200, json=_quote_body())

    quote = _client(handler).latest_quote("spy")
    assert seen == {"path": "/v2/stocks/SPY/quotes/latest", "feed": "iex", "key": "key"}
    assert quote.symbol == "SPY"
    assert quote.mid_price == pytest.approx(450.0)
    assert quote.timestamp is not None and quote.timestamp.tzinfo is not None


def test_retries_server_errors_then_succeeds():
    calls = []

    def handler(request):
        calls.append(1)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json=_quote_body())

    assert _client(handler).latest_quote("SPY").bid_price == pytest.approx(449.9)
    assert len(calls) == 3


def test_gives_up_after_max_attempts():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(500)

    with pytest.raises(UpstreamError):
        _client(handler).latest_quote("SPY")
    assert len(calls) == 3


def test_transport_errors_become_upstream_errors():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(UpstreamError):
        _client(handler).latest_quote("SPY")


@pytest.mark.parametrize("response", [httpx.Response(404), httpx.Response(200, json=_quote_body(0, 0))])
def test_unknown_symbol_or_empty_quote(response):
    with pytest.raises(QuoteNotFound):
        _client(lambda request: response).latest_quote("ZZZZ")


def test_quote_route_without_credentials_is_503(client, user_headers):
    r = client.get("/api/market-data/quote", params={"symbol": "SPY"}, headers=user_headers)
    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "MARKET_DATA_UNCONFIGURED"


def test_quote_route_refreshes_known_asset_price(client, user_headers, asset):
    def handler(request):
        return httpx.Response(200, json=_quote_body(bp=460.0, ap=461.0))

    def override():
        c = _client(handler)
        try:
            yield c
        finally:
            c.close()

    client.app.dependency_overrides[get_quote_client] = override
    try:
        r = client.get("/api/market-data/quote", params={"symbol": "spy"}, headers=user_headers)
    finally:
        client.app.dependency_overrides.clear()

    assert r.status_code == 200, r.text
    assert r.json()["mid_price"] == pytest.approx(460.5)
    refreshed = client.get(f"/api/assets/{asset['id']}", headers=user_headers).json()
    assert refreshed["current_price"] == pytest.approx(460.5)


def test_quote_route_maps_upstream_failures(client, user_headers):
    def override():
        c = _client(lambda request: httpx.Response(502))
        try:
            yield c
        finally:
            c.close()

    client.app.dependency_overrides[get_quote_client] = override
    try:
        r = client.get("/api/market-data/quote", params={"symbol": "SPY"}, headers=user_headers)
    finally:
        client.app.dependency_overrides.clear()
    assert r.status_code == 502
    assert r.json()["detail"]["code"] == "MARKET_DATA_UPSTREAM_ERROR"


def _asset_row(symbol, name, *, tradable=True, status="active"):
    return {
        "id": f"id-{symbol}",
        "class": "us_equity",
        "exchange": "NASDAQ",
        "symbol": symbol,
        "name": name,
        "status": status,
        "tradable": tradable,
        "marginable": True,
        "shortable": False,
    }


def test_search_assets_filters_by_symbol_or_name():
    seen = {}

    def handler(request):
        seen["host"] = request.url.host
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json=[
                _asset_row("AAPL", "Apple Inc. Common Stock"),
                _asset_row("APLE", "Apple Hospitality REIT"),
                _asset_row("MSFT", "Microsoft Corporation"),
                _asset_row("APPX", "Apple Leveraged ETF", tradable=False),
                _asset_row("APLD", "Applied Digital", status="inactive"),
            ],
        )

    c = AlpacaQuoteClient(
        key_id="key",
        secret_key="secret",
        data_url="https://data.example.test",
        trading_url="https://trading.example.test/",
        wait=wait_none(),
        transport=httpx.MockTransport(handler),
    )
    matches = c.search_assets("  apple ")
    assert seen == {
        "host": "trading.example.test",
        "path": "/v2/assets",
        "params": {"status": "active", "asset_class": "us_equity"},
    }
    assert [m.symbol for m in matches] == ["AAPL", "APLE"]
    assert matches[0].asset_class == "us_equity"
    assert matches[0].shortable is False

    assert [m.symbol for m in c.search_assets("msf")] == ["MSFT"]


def test_search_assets_caps_results():
    rows = [_asset_row(f"T{i:03d}", "Test Holdings") for i in range(80)]
    matches = _client(lambda request: httpx.Response(200, json=rows)).search_assets("test")
    assert len(matches) == 50


def test_search_assets_upstream_error():
    with pytest.raises(UpstreamError):
        _client(lambda request: httpx.Response(403)).search_assets("spy")


def test_asset_search_route(client, user_headers):
    r = client.get("/api/market-data/assets", params={"query": "   "}, headers=user_headers)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "MISSING_QUERY"

    assert client.get("/api/market-data/assets", params={"query": "spy"}, headers=user_headers).status_code == 503

    def override():
        c = _client(lambda request: httpx.Response(200, json=[_asset_row("SPY", "SPDR S&P 500 ETF Trust")]))
        try:
            yield c
        finally:
            c.close()

    client.app.dependency_overrides[get_quote_client] = override
    try:
        r = client.get("/api/market-data/assets", params={"query": "spdr"}, headers=user_headers)
    finally:
        client.app.dependency_overrides.clear()
    assert r.status_code == 200, r.text
    assert r.json() == [
        {
            "symbol": "SPY",
            "name": "SPDR S&P 500 ETF Trust",
            "exchange": "NASDAQ",
            "asset_class": "us_equity",
            "tradable": True,
            "marginable": True,
            "shortable": False,
        }
    ]
