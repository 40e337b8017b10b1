"""
Position netting and account roll-ups for paper accounts.

Positions are signed (negative = short). A fill in the same direction as the
held quantity re-weights the average cost; a fill against it realizes P&L on
the closed quantity at the existing average cost. A fill that crosses
through zero opens the remainder at the fill price.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from options_desk.models import PaperPosition, PaperTradingAccount


@dataclass(frozen=True, slots=True)
class AccountTotals:
    cash_balance: float
    position_value: float
    total_equity: float
    total_pnl: float


def mark_price(position: PaperPosition) -> float:
    return float(position.current_price if position.current_price is not None else position.average_cost)


def market_value(position: PaperPosition) -> float:
    return mark_price(position) * position.quantity * (position.multiplier or 1)


def cost_basis(position: PaperPosition) -> float:
    return float(position.average_cost) * abs(position.quantity) * (position.multiplier or 1)


def unrealized_pnl(position: PaperPosition) -> float:
    return (mark_price(position) - float(position.average_cost)) * position.quantity * (position.multiplier or 1)


def apply_fill(position: PaperPosition, *, side: str, quantity: int, price: float, mark: float) -> float:
    """
    Net a fill of `quantity` at `price` into `position`.

    `mark` becomes the position's current price. Returns the P&L realized by
    this fill (already added to `position.realized_pnl`).
    """
    if quantity <= 0:
        raise ValueError("quantity must be positive")

    multiplier = position.multiplier or 1
    held = position.quantity or 0
    avg = float(position.average_cost or 0.0)
    signed = quantity if side == "buy" else -quantity
    realized = 0.0

    if held == 0 or (held > 0) == (signed > 0):
        avg = (abs(held) * avg + quantity * price) / (abs(held) + quantity)
    else:
        closing = min(quantity, abs(held))
        direction = 1 if held > 0 else -1
        realized = (price - avg) * closing * direction * multiplier
        if quantity > abs(held):
            avg = price

    position.quantity = held + signed
    position.average_cost = avg
    position.realized_pnl = float(position.realized_pnl or 0.0) + realized
    position.current_price = float(mark)
    position.unrealized_pnl = unrealized_pnl(position)
    return realized


def compute_totals(account: PaperTradingAccount, positions: Iterable[PaperPosition]) -> AccountTotals:
    position_value = sum(market_value(p) for p in positions)
    cash = float(account.cash_balance)
    equity = cash + position_value
    return AccountTotals(
        cash_balance=cash,
        position_value=position_value,
        total_equity=equity,
        total_pnl=equity - float(account.initial_balance),
    )


def refresh_account_totals(account: PaperTradingAccount, positions: Iterable[PaperPosition]) -> AccountTotals:
    totals = compute_totals(account, positions)
    account.total_equity = totals.total_equity
    account.total_pnl = totals.total_pnl
    return totals
