from __future__ import annotations

import math

import pytest

from options_desk.paper.fills import (
    FillRejected,
    compute_fill,
    intrinsic_value,
    option_leg_fill,
    theoretical_option_price,
    time_value,
)


def test_market_buy_pays_slippage_above_market():
    fill = compute_fill(order_type="market", side="buy", market_price=100.0)
    assert fill.price == pytest.approx(100.10)
    assert fill.slippage == pytest.approx(0.10)


def test_market_sell_receives_slippage_below_market():
    fill = compute_fill(order_type="market", side="sell", market_price=200.0)
    assert fill.price == pytest.approx(199.80)


def test_limit_buy_fills_at_limit_when_market_at_or_below():
    fill = compute_fill(order_type="limit", side="buy", market_price=99.0, limit_price=100.0)
    assert fill.price == 100.0
    fill = compute_fill(order_type="limit", side="buy", market_price=100.0, limit_price=100.0)
    assert fill.price == 100.0


def test_limit_buy_rejected_when_market_above_limit():
    with pytest.raises(FillRejected) as exc:
        compute_fill(order_type="limit", side="buy", market_price=101.0, limit_price=100.0)
    assert exc.value.code == "LIMIT_NOT_MET"


def test_limit_sell_requires_market_at_or_above_limit():
    assert compute_fill(order_type="limit", side="sell", market_price=105.0, limit_price=104.0).price == 104.0
    with pytest.raises(FillRejected) as exc:
        compute_fill(order_type="limit", side="sell", market_price=103.0, limit_price=104.0)
    assert exc.value.code == "LIMIT_NOT_MET"


def test_stop_buy_triggers_at_or_above_stop_with_wider_slippage():
    fill = compute_fill(order_type="stop", side="buy", market_price=110.0, stop_price=110.0)
    assert fill.price == pytest.approx(110.0 * 1.0015)


def test_stop_sell_triggers_at_or_below_stop():
    fill = compute_fill(order_type="stop", side="sell", market_price=90.0, stop_price=95.0)
    assert fill.price == pytest.approx(90.0 * 0.9985)


def test_stop_not_triggered():
    with pytest.raises(FillRejected) as exc:
        compute_fill(order_type="stop", side="sell", market_price=96.0, stop_price=95.0)
    assert exc.value.code == "STOP_NOT_TRIGGERED"


def test_missing_limit_and_stop_prices_are_reported():
    with pytest.raises(FillRejected) as exc:
        compute_fill(order_type="limit", side="buy", market_price=1.0)
    assert exc.value.code == "MISSING_LIMIT_PRICE"
    with pytest.raises(FillRejected) as exc:
        compute_fill(order_type="stop", side="buy", market_price=1.0)
    assert exc.value.code == "MISSING_STOP_PRICE"


def test_intrinsic_value_calls_and_puts():
    assert intrinsic_value(option_type="call", underlying=105.0, strike=100.0) == 5.0
    assert intrinsic_value(option_type="call", underlying=95.0, strike=100.0) == 0.0
    assert intrinsic_value(option_type="put", underlying=95.0, strike=100.0) == 5.0
    assert intrinsic_value(option_type="put", underlying=105.0, strike=100.0) == 0.0


def test_theoretical_price_is_intrinsic_plus_flat_time_value():
    tv = math.sqrt(30 / 365) * 0.30 * 100.0 * 0.4
    assert time_value(100.0) == pytest.approx(tv)
    assert theoretical_option_price(option_type="call", underlying=100.0, strike=95.0) == pytest.approx(5.0 + tv)
    # Strike defaults to at-the-money.
    assert theoretical_option_price(option_type="put", underlying=100.0) == pytest.approx(tv)


def test_option_leg_fill_applies_one_percent_slippage():
    assert option_leg_fill(side="buy", theoretical_price=4.0).price == pytest.approx(4.04)
    assert option_leg_fill(side="sell", theoretical_price=4.0).price == pytest.approx(3.96)
