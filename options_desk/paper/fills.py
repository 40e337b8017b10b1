"""
Synthetic fill pricing for paper orders.

Stock orders:
- market: fixed 0.1% slippage against the trader (buy above, sell below).
- limit:  fills exactly at the limit once the market price is at or through it.
- stop:   triggers once the market price reaches the stop, then fills with a
          wider 0.15% slippage.

Option legs of complex orders:
- theoretical price = intrinsic value + a flat time value of
  sqrt(30/365) * 0.30 * S * 0.4 (30 days to expiry, 30% vol).
- fills carry 1% slippage; one contract covers 100 shares.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

MARKET_SLIPPAGE = 0.001
STOP_SLIPPAGE = 0.0015
OPTION_SLIPPAGE = 0.01
CONTRACT_MULTIPLIER = 100

DAYS_TO_EXPIRY = 30
ASSUMED_VOLATILITY = 0.30
TIME_VALUE_FACTOR = 0.4
DEFAULT_UNDERLYING_PRICE = 100.0


class FillRejected(Exception):
    """The order cannot be filled at the given market price."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True, slots=True)
class Fill:
    price: float
    market_price: float

    @property
    def slippage(self) -> float:
        return abs(self.price - self.market_price)


def compute_fill(
    *,
    order_type: str,
    side: str,
    market_price: float,
    limit_price: Optional[float] = None,
    stop_price: Optional[float] = None,
) -> Fill:
    """Price a stock order against `market_price` or raise FillRejected."""
    mp = float(market_price)
    is_buy = side == "buy"

    if order_type == "market":
        price = mp * (1 + MARKET_SLIPPAGE) if is_buy else mp * (1 - MARKET_SLIPPAGE)
        return Fill(price=price, market_price=mp)

    if order_type == "limit":
        if limit_price is None:
            raise FillRejected("MISSING_LIMIT_PRICE", "Limit price is required for limit orders")
        limit = float(limit_price)
        if (is_buy and mp <= limit) or (not is_buy and mp >= limit):
            return Fill(price=limit, market_price=mp)
        raise FillRejected("LIMIT_NOT_MET", "Limit price condition not met")

    if order_type == "stop":
        if stop_price is None:
            raise FillRejected("MISSING_STOP_PRICE", "Stop price is required for stop orders")
        stop = float(stop_price)
        if is_buy and mp >= stop:
            return Fill(price=mp * (1 + STOP_SLIPPAGE), market_price=mp)
        if not is_buy and mp <= stop:
            return Fill(price=mp * (1 - STOP_SLIPPAGE), market_price=mp)
        raise FillRejected("STOP_NOT_TRIGGERED", "Stop price not triggered")

    raise FillRejected("INVALID_ORDER_TYPE", f"Unsupported order type: {order_type!r}")


def intrinsic_value(*, option_type: str, underlying: float, strike: float) -> float:
    if option_type == "call":
        return max(underlying - strike, 0.0)
    return max(strike - underlying, 0.0)


def time_value(underlying: float) -> float:
    return math.sqrt(DAYS_TO_EXPIRY / 365) * ASSUMED_VOLATILITY * underlying * TIME_VALUE_FACTOR


def theoretical_option_price(*, option_type: str, underlying: float, strike: Optional[float] = None) -> float:
    k = float(strike) if strike is not None else float(underlying)
    return intrinsic_value(option_type=option_type, underlying=underlying, strike=k) + time_value(underlying)


def option_leg_fill(*, side: str, theoretical_price: float) -> Fill:
    factor = 1 + OPTION_SLIPPAGE if side == "buy" else 1 - OPTION_SLIPPAGE
    return Fill(price=theoretical_price * factor, market_price=theoretical_price)
