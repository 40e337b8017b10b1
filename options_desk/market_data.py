"""
Alpaca REST lookups: latest stock quotes and tradable asset search.

GET {APCA_DATA_URL}/v2/stocks/{symbol}/quotes/latest?feed=<feed>
GET {APCA_API_BASE_URL}/v2/assets?status=active&asset_class=us_equity
both authenticated with APCA-API-KEY-ID / APCA-API-SECRET-KEY headers.
Transport errors, 429 and 5xx responses are retried with exponential backoff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, List, Optional

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from options_desk.common.logging import log_event
from options_desk.common.timeutils import parse_timestamp
from options_desk.config import DEFAULT_TRADING_URL, get_settings

logger = logging.getLogger(__name__)


class MarketDataError(Exception):
    pass


class QuoteNotFound(MarketDataError):
    pass


class UpstreamError(MarketDataError):
    pass


class _RetryableStatus(UpstreamError):
    pass


@dataclass(frozen=True, slots=True)
class Quote:
    symbol: str
    bid_price: float
    ask_price: float
    bid_size: Optional[float]
    ask_size: Optional[float]
    timestamp: Optional[datetime]

    @property
    def mid_price(self) -> float:
        if self.bid_price > 0 and self.ask_price > 0:
            return (self.bid_price + self.ask_price) / 2
        return self.bid_price if self.bid_price > 0 else self.ask_price


@dataclass(frozen=True, slots=True)
class AssetMatch:
    symbol: str
    name: str
    exchange: Optional[str]
    asset_class: Optional[str]
    tradable: bool
    marginable: bool
    shortable: bool


def _num(v: Any) -> Optional[float]:
    try:
        return float(v) if v is not None else None
    except (TypeError, ValueError):
        return None


class AlpacaQuoteClient:
    def __init__(
        self,
        *,
        key_id: str,
        secret_key: str,
        data_url: str,
        trading_url: str = DEFAULT_TRADING_URL,
        feed: str = "iex",
        timeout: float = 10.0,
        max_attempts: int = 3,
        wait: wait_base | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._data_url = data_url.rstrip("/")
        self._trading_url = trading_url.rstrip("/")
        self._feed = feed
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=4)
        self._client = httpx.Client(
            headers={
                "APCA-API-KEY-ID": key_id,
                "APCA-API-SECRET-KEY": secret_key,
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _get(self, url: str, params: dict[str, Any]) -> httpx.Response:
        for attempt in Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
            reraise=True,
        ):
            with attempt:
                resp = self._client.get(url, params=params)
                if resp.status_code == 429 or resp.status_code >= 500:
                    raise _RetryableStatus(f"HTTP {resp.status_code} from Alpaca API")
                return resp
        raise UpstreamError("Alpaca request did not complete")  # pragma: no cover

    def latest_quote(self, symbol: str) -> Quote:
        sym = symbol.strip().upper()
        try:
            resp = self._get(f"{self._data_url}/v2/stocks/{sym}/quotes/latest", {"feed": self._feed})
        except httpx.TransportError as e:
            raise UpstreamError(f"market data transport error: {e}") from e

        if resp.status_code in (400, 404, 422):
            raise QuoteNotFound(f"no quote for {sym}")
        if resp.status_code >= 400:
            raise UpstreamError(f"HTTP {resp.status_code} from market data API")

        quote = (resp.json() or {}).get("quote") or {}
        bid = _num(quote.get("bp")) or 0.0
        ask = _num(quote.get("ap")) or 0.0
        if bid <= 0 and ask <= 0:
            raise QuoteNotFound(f"no quote for {sym}")

        ts = quote.get("t")
        out = Quote(
            symbol=sym,
            bid_price=bid,
            ask_price=ask,
            bid_size=_num(quote.get("bs")),
            ask_size=_num(quote.get("as")),
            timestamp=parse_timestamp(ts) if ts else None,
        )
        log_event(logger, "market_data.quote", severity="DEBUG", symbol=sym, mid_price=out.mid_price)
        return out

    def search_assets(self, query: str, *, limit: int = 50) -> List[AssetMatch]:
        """
        Active, tradable US equities whose symbol or name contains `query`
        (case-insensitive), in the order Alpaca lists them.
        """
        needle = query.strip().lower()
        try:
            resp = self._get(
                f"{self._trading_url}/v2/assets",
                {"status": "active", "asset_class": "us_equity"},
            )
        except httpx.TransportError as e:
            raise UpstreamError(f"asset search transport error: {e}") from e
        if resp.status_code >= 400:
            raise UpstreamError(f"HTTP {resp.status_code} from trading API")

        matches: List[AssetMatch] = []
        for row in resp.json() or []:
            symbol = str(row.get("symbol") or "")
            name = str(row.get("name") or "")
            if not row.get("tradable") or row.get("status") != "active":
                continue
            if needle not in symbol.lower() and needle not in name.lower():
                continue
            matches.append(
                AssetMatch(
                    symbol=symbol,
                    name=name,
                    exchange=row.get("exchange"),
                    asset_class=row.get("class"),
                    tradable=True,
                    marginable=bool(row.get("marginable")),
                    shortable=bool(row.get("shortable")),
                )
            )
            if len(matches) >= limit:
                break
        log_event(logger, "market_data.asset_search", severity="DEBUG", query=needle, matches=len(matches))
        return matches


def get_quote_client() -> Iterator[Optional[AlpacaQuoteClient]]:
    """FastAPI dependency; yields None when Alpaca credentials are not configured."""
    settings = get_settings()
    if not settings.market_data_configured:
        yield None
        return
    client = AlpacaQuoteClient(
        key_id=settings.apca_api_key_id,
        secret_key=settings.apca_api_secret_key,
        data_url=settings.apca_data_url,
        trading_url=settings.apca_api_base_url,
        feed=settings.alpaca_feed,
    )
    try:
        yield client
    finally:
        client.close()
