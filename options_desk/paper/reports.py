"""Read-side summaries for paper accounts: portfolio, order history, reset."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from options_desk.common.logging import log_event
from options_desk.models import OPEN_ORDER_STATUSES, Asset, PaperOrder, PaperPosition, PaperTradingAccount
from options_desk.paper.ledger import cost_basis, market_value

logger = logging.getLogger(__name__)

COMMISSION_PER_TRADE = 0.50


@dataclass(frozen=True, slots=True)
class TradeOutcomes:
    total_trades: int
    winning_trades: int
    losing_trades: int

    @property
    def win_rate(self) -> float:
        if not self.total_trades:
            return 0.0
        return round(self.winning_trades / self.total_trades * 100, 2)


def classify_trades(filled_orders: Sequence[PaperOrder]) -> TradeOutcomes:
    """
    Score each filled sell against the first filled buy of the same asset.

    `filled_orders` must be in chronological order.
    """
    first_buy: dict[int, PaperOrder] = {}
    wins = losses = 0
    for order in filled_orders:
        if order.side == "buy":
            first_buy.setdefault(order.asset_id, order)
            continue
        buy = first_buy.get(order.asset_id)
        if buy is None or order.filled_price is None or buy.filled_price is None:
            continue
        pnl = (order.filled_price - buy.filled_price) * (order.filled_quantity or 0)
        if pnl > 0:
            wins += 1
        elif pnl < 0:
            losses += 1
    return TradeOutcomes(total_trades=len(filled_orders), winning_trades=wins, losing_trades=losses)


def _position_row(position: PaperPosition, asset: Asset) -> dict[str, Any]:
    mv = market_value(position)
    basis = cost_basis(position)
    unrealized = float(position.unrealized_pnl or 0.0)
    realized = float(position.realized_pnl or 0.0)
    return {
        "id": position.id,
        "asset_id": asset.id,
        "symbol": asset.symbol,
        "name": asset.name,
        "sector": asset.sector,
        "quantity": position.quantity,
        "average_cost": position.average_cost,
        "current_price": position.current_price,
        "multiplier": position.multiplier,
        "market_value": mv,
        "cost_basis": basis,
        "unrealized_pnl": unrealized,
        "realized_pnl": realized,
        "total_pnl": unrealized + realized,
        "percentage_return": (unrealized / basis * 100) if basis else 0.0,
        "last_updated": position.last_updated,
    }


def build_portfolio(db: Session, account: PaperTradingAccount, *, include_closed: bool = False) -> dict[str, Any]:
    rows = db.execute(
        select(PaperPosition, Asset)
        .join(Asset, PaperPosition.asset_id == Asset.id)
        .where(PaperPosition.paper_account_id == account.id)
        .order_by(Asset.symbol)
    ).all()

    open_rows = [(p, a) for p, a in rows if p.quantity != 0]
    shown = rows if include_closed else open_rows

    position_value = sum(market_value(p) for p, _ in rows)
    unrealized = sum(float(p.unrealized_pnl or 0.0) for p, _ in rows)
    realized = sum(float(p.realized_pnl or 0.0) for p, _ in rows)
    cash = float(account.cash_balance)
    equity = cash + position_value
    initial = float(account.initial_balance)

    return {
        "account": {
            "id": account.id,
            "user_id": account.user_id,
            "is_active": account.is_active,
            "initial_balance": initial,
        },
        "positions": [_position_row(p, a) for p, a in shown],
        "summary": {
            "total_position_value": position_value,
            "total_cash_balance": cash,
            "total_equity": equity,
            "total_unrealized_pnl": unrealized,
            "total_realized_pnl": realized,
            "total_pnl": unrealized + realized,
            "percentage_return": ((equity - initial) / initial * 100) if initial else 0.0,
            "number_of_positions": len(open_rows),
        },
    }


def _order_row(order: PaperOrder, asset: Asset) -> dict[str, Any]:
    return {
        "id": order.id,
        "asset_id": asset.id,
        "symbol": asset.symbol,
        "name": asset.name,
        "order_type": order.order_type,
        "side": order.side,
        "quantity": order.quantity,
        "limit_price": order.limit_price,
        "stop_price": order.stop_price,
        "status": order.status,
        "filled_quantity": order.filled_quantity,
        "filled_price": order.filled_price,
        "filled_at": order.filled_at,
        "reject_reason": order.reject_reason,
        "created_at": order.created_at,
    }


def pnl_summary(positions: Iterable[PaperPosition], filled_orders: Sequence[PaperOrder]) -> dict[str, Any]:
    positions = list(positions)
    realized = sum(float(p.realized_pnl or 0.0) for p in positions)
    unrealized = sum(float(p.unrealized_pnl or 0.0) for p in positions)
    outcomes = classify_trades(filled_orders)
    commission = outcomes.total_trades * COMMISSION_PER_TRADE
    total = realized + unrealized
    return {
        "total_realized_pnl": realized,
        "total_unrealized_pnl": unrealized,
        "total_pnl": total,
        "total_trades": outcomes.total_trades,
        "winning_trades": outcomes.winning_trades,
        "losing_trades": outcomes.losing_trades,
        "win_rate": outcomes.win_rate,
        "total_commission": commission,
        "net_pnl": total - commission,
    }


def build_history(
    db: Session,
    account: PaperTradingAccount,
    *,
    status: Optional[str] = None,
    side: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    conditions = [PaperOrder.paper_account_id == account.id]
    if status:
        conditions.append(PaperOrder.status == status)
    if side:
        conditions.append(PaperOrder.side == side)
    if start_date:
        conditions.append(PaperOrder.created_at >= start_date)
    if end_date:
        conditions.append(PaperOrder.created_at <= end_date)

    total = db.execute(select(func.count(PaperOrder.id)).where(*conditions)).scalar_one()
    rows = db.execute(
        select(PaperOrder, Asset)
        .join(Asset, PaperOrder.asset_id == Asset.id)
        .where(*conditions)
        .order_by(PaperOrder.created_at.desc(), PaperOrder.id.desc())
        .limit(limit)
        .offset(offset)
    ).all()

    positions = db.execute(
        select(PaperPosition).where(PaperPosition.paper_account_id == account.id)
    ).scalars()
    filled = list(
        db.execute(
            select(PaperOrder)
            .where(PaperOrder.paper_account_id == account.id, PaperOrder.status == "filled")
            .order_by(PaperOrder.filled_at, PaperOrder.id)
        ).scalars()
    )

    return {
        "orders": [_order_row(o, a) for o, a in rows],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + len(rows) < total,
        },
        "pnl_summary": pnl_summary(positions, filled),
    }


def reset_account(db: Session, account: PaperTradingAccount) -> dict[str, int]:
    """Wipe positions, cancel open orders and restore the starting balance."""
    deleted = db.execute(
        delete(PaperPosition).where(PaperPosition.paper_account_id == account.id)
    ).rowcount
    canceled = db.execute(
        update(PaperOrder)
        .where(PaperOrder.paper_account_id == account.id, PaperOrder.status.in_(OPEN_ORDER_STATUSES))
        .values(status="canceled")
    ).rowcount

    account.cash_balance = account.initial_balance
    account.total_equity = account.initial_balance
    account.total_pnl = 0.0

    log_event(
        logger,
        "paper.account.reset",
        paper_account_id=account.id,
        deleted_positions=deleted,
        canceled_orders=canceled,
    )
    return {"deleted_positions": int(deleted or 0), "canceled_orders": int(canceled or 0)}
