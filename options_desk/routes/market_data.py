"""
Market data API routes.

GET /api/market-data/quote?symbol=SPY - Latest bid/ask/mid from Alpaca
GET /api/market-data/assets?query=app - Search tradable Alpaca equities
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.db import get_db
from options_desk.errors import api_error
from options_desk.market_data import AlpacaQuoteClient, QuoteNotFound, UpstreamError, get_quote_client
from options_desk.models import Asset
from options_desk.schemas import AssetSearchResultOut, QuoteOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/market-data", tags=["market-data"])


@router.get("/quote", response_model=QuoteOut)
def get_quote(
    symbol: str = Query(min_length=1, max_length=32),
    auth: AuthContext = Depends(get_auth_context),
    client: Optional[AlpacaQuoteClient] = Depends(get_quote_client),
    db: Session = Depends(get_db),
):
    if client is None:
        raise api_error(503, "MARKET_DATA_UNCONFIGURED", "Alpaca API credentials are not configured")

    try:
        quote = client.latest_quote(symbol)
    except QuoteNotFound as e:
        raise api_error(404, "QUOTE_NOT_FOUND", f"No quote available for {symbol.strip().upper()}") from e
    except UpstreamError as e:
        log_event(logger, "market_data.upstream_error", severity="WARNING", symbol=symbol, error=str(e))
        raise api_error(502, "MARKET_DATA_UPSTREAM_ERROR", "Market data provider request failed") from e

    asset = db.execute(select(Asset).where(Asset.symbol == quote.symbol)).scalar_one_or_none()
    if asset is not None:
        asset.current_price = quote.mid_price
        db.commit()

    return QuoteOut(
        symbol=quote.symbol,
        bid_price=quote.bid_price,
        ask_price=quote.ask_price,
        mid_price=quote.mid_price,
        bid_size=quote.bid_size,
        ask_size=quote.ask_size,
        timestamp=quote.timestamp,
    )


@router.get("/assets", response_model=list[AssetSearchResultOut])
def search_assets(
    query: Optional[str] = Query(default=None, max_length=64),
    auth: AuthContext = Depends(get_auth_context),
    client: Optional[AlpacaQuoteClient] = Depends(get_quote_client),
):
    if not query or not query.strip():
        raise api_error(400, "MISSING_QUERY", "Query parameter is required")
    if client is None:
        raise api_error(503, "MARKET_DATA_UNCONFIGURED", "Alpaca API credentials are not configured")

    try:
        matches = client.search_assets(query)
    except UpstreamError as e:
        log_event(logger, "market_data.upstream_error", severity="WARNING", query=query, error=str(e))
        raise api_error(502, "MARKET_DATA_UPSTREAM_ERROR", "Asset search request failed") from e

    return [
        AssetSearchResultOut(
            symbol=m.symbol,
            name=m.name,
            exchange=m.exchange,
            asset_class=m.asset_class,
            tradable=m.tradable,
            marginable=m.marginable,
            shortable=m.shortable,
        )
        for m in matches
    ]
