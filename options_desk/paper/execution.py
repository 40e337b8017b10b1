"""
Transactional paper order flows.

Both flows only flush; the caller owns the transaction. On `OrderRejected`
the pending order has already been marked `rejected` and the caller commits
that alone; every other `ExecutionError` must be rolled back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.models import Asset, PaperOrder, PaperPosition, PaperTradingAccount
from options_desk.paper.fills import (
    CONTRACT_MULTIPLIER,
    DEFAULT_UNDERLYING_PRICE,
    FillRejected,
    compute_fill,
    option_leg_fill,
    theoretical_option_price,
)
from options_desk.paper.ledger import AccountTotals, apply_fill, refresh_account_totals
from options_desk.schemas import ComplexOrderRequest, ExecuteOrderRequest

logger = logging.getLogger(__name__)


class ExecutionError(Exception):
    def __init__(self, status_code: int, code: str, message: str, **extra) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.extra = extra


class OrderRejected(ExecutionError):
    """The order row exists and is persisted as `rejected`."""

    def __init__(self, order: PaperOrder, code: str, message: str) -> None:
        super().__init__(400, code, message, order_id=order.id)
        self.order = order


@dataclass
class ExecutionResult:
    order: PaperOrder
    position: Optional[PaperPosition]
    fill_price: float
    total_cost: float
    slippage: float
    totals: AccountTotals


@dataclass
class LegResult:
    order: PaperOrder
    asset: Asset
    side: str
    quantity: int
    option_type: str
    strike_price: float
    theoretical_price: float
    fill_price: float
    leg_cost: float


@dataclass
class ComplexResult:
    spread_type: str
    underlying_symbol: str
    underlying_price: float
    legs: List[LegResult] = field(default_factory=list)
    total_cost: float = 0.0
    total_credit: float = 0.0
    totals: Optional[AccountTotals] = None

    @property
    def net_cost(self) -> float:
        return self.total_cost - self.total_credit

    @property
    def is_debit(self) -> bool:
        return self.net_cost > 0


def load_account(
    db: Session,
    account_id: int,
    *,
    user_id: str,
    is_admin: bool = False,
    for_update: bool = False,
) -> PaperTradingAccount:
    """Fetch an account visible to the caller or raise 404 ACCOUNT_NOT_FOUND."""
    stmt = select(PaperTradingAccount).where(PaperTradingAccount.id == account_id)
    if for_update:
        stmt = stmt.with_for_update()
    account = db.execute(stmt).scalar_one_or_none()
    if account is None or (account.user_id != user_id and not is_admin):
        raise ExecutionError(404, "ACCOUNT_NOT_FOUND", "Paper trading account not found")
    return account


def _require_active(account: PaperTradingAccount) -> None:
    if not account.is_active:
        raise ExecutionError(400, "ACCOUNT_NOT_ACTIVE", "Paper trading account is not active")


def _require_asset(db: Session, asset_id: int) -> Asset:
    asset = db.get(Asset, asset_id)
    if asset is None:
        raise ExecutionError(404, "ASSET_NOT_FOUND", f"Asset {asset_id} not found")
    return asset


def _account_positions(db: Session, account_id: int) -> List[PaperPosition]:
    db.flush()
    return list(
        db.execute(select(PaperPosition).where(PaperPosition.paper_account_id == account_id)).scalars()
    )


def _find_position(db: Session, account_id: int, asset_id: int) -> Optional[PaperPosition]:
    return db.execute(
        select(PaperPosition).where(
            PaperPosition.paper_account_id == account_id,
            PaperPosition.asset_id == asset_id,
        )
    ).scalar_one_or_none()


def _contract_size_conflict(position: Optional[PaperPosition], multiplier: int) -> bool:
    """An open position only nets fills of its own contract size."""
    return position is not None and position.quantity != 0 and (position.multiplier or 1) != multiplier


def _open_position(
    db: Session,
    position: Optional[PaperPosition],
    *,
    account_id: int,
    asset_id: int,
    price: float,
    multiplier: int,
) -> PaperPosition:
    if position is None:
        position = PaperPosition(
            paper_account_id=account_id,
            asset_id=asset_id,
            quantity=0,
            average_cost=price,
            realized_pnl=0.0,
            multiplier=multiplier,
        )
        db.add(position)
    elif position.quantity == 0:
        position.multiplier = multiplier
    return position


def _reject(order: PaperOrder, code: str, message: str, *, account_id: int) -> OrderRejected:
    order.status = "rejected"
    order.reject_reason = code
    log_event(
        logger,
        "paper.order.rejected",
        severity="WARNING",
        order_id=order.id,
        paper_account_id=account_id,
        reason=code,
    )
    return OrderRejected(order, code, message)


def validate_execute_request(req: ExecuteOrderRequest) -> None:
    if req.order_type == "limit" and req.limit_price is None:
        raise ExecutionError(400, "MISSING_LIMIT_PRICE", "Limit price is required for limit orders")
    if req.order_type == "stop" and req.stop_price is None:
        raise ExecutionError(400, "MISSING_STOP_PRICE", "Stop price is required for stop orders")


def execute_order(db: Session, req: ExecuteOrderRequest, *, user_id: str, is_admin: bool = False) -> ExecutionResult:
    """
    Fill a single stock order against the supplied market price.

    Locks the account row, inserts a pending order, prices the fill, moves
    cash and nets the position, then re-derives equity and P&L from every
    position in the account.
    """
    validate_execute_request(req)
    account = load_account(db, req.paper_account_id, user_id=user_id, is_admin=is_admin, for_update=True)
    _require_active(account)
    asset = _require_asset(db, req.asset_id)

    order = PaperOrder(
        paper_account_id=account.id,
        asset_id=asset.id,
        order_type=req.order_type,
        side=req.side,
        quantity=req.quantity,
        limit_price=req.limit_price,
        stop_price=req.stop_price,
        status="pending",
        filled_quantity=0,
    )
    db.add(order)
    db.flush()

    try:
        fill = compute_fill(
            order_type=req.order_type,
            side=req.side,
            market_price=req.market_price,
            limit_price=req.limit_price,
            stop_price=req.stop_price,
        )
    except FillRejected as e:
        raise _reject(order, e.code, e.message, account_id=account.id) from e

    total_cost = fill.price * req.quantity
    position = _find_position(db, account.id, asset.id)
    if _contract_size_conflict(position, 1):
        raise _reject(
            order,
            "MULTIPLIER_MISMATCH",
            f"{asset.symbol} is held as option contracts; stock fills cannot net into it",
            account_id=account.id,
        )

    if req.side == "buy":
        if account.cash_balance < total_cost:
            raise _reject(order, "INSUFFICIENT_FUNDS", "Insufficient funds", account_id=account.id)
        account.cash_balance -= total_cost
        position = _open_position(
            db, position, account_id=account.id, asset_id=asset.id, price=fill.price, multiplier=1
        )
    else:
        if position is None or position.quantity < req.quantity:
            raise _reject(order, "INSUFFICIENT_POSITION", "Insufficient position to sell", account_id=account.id)
        account.cash_balance += total_cost

    realized = apply_fill(position, side=req.side, quantity=req.quantity, price=fill.price, mark=req.market_price)

    now = utc_now()
    order.status = "filled"
    order.filled_quantity = req.quantity
    order.filled_price = fill.price
    order.filled_at = now

    totals = refresh_account_totals(account, _account_positions(db, account.id))

    log_event(
        logger,
        "paper.order.filled",
        order_id=order.id,
        paper_account_id=account.id,
        symbol=asset.symbol,
        side=req.side,
        order_type=req.order_type,
        quantity=req.quantity,
        fill_price=fill.price,
        realized_pnl=realized,
        cash_balance=account.cash_balance,
    )
    return ExecutionResult(
        order=order,
        position=position,
        fill_price=fill.price,
        total_cost=total_cost,
        slippage=fill.slippage,
        totals=totals,
    )


def execute_complex_order(
    db: Session, req: ComplexOrderRequest, *, user_id: str, is_admin: bool = False
) -> ComplexResult:
    """
    Fill a multi-leg option spread at synthetic theoretical prices.

    Every leg is priced and the net debit checked against cash before any
    row is written, so a rejected spread leaves no partial legs behind.
    """
    account = load_account(db, req.paper_account_id, user_id=user_id, is_admin=is_admin, for_update=True)
    _require_active(account)

    underlying = float(req.market_price or DEFAULT_UNDERLYING_PRICE)
    result = ComplexResult(
        spread_type=req.spread_type,
        underlying_symbol=req.underlying_symbol.strip().upper(),
        underlying_price=underlying,
    )

    priced = []
    for leg in req.legs:
        asset = _require_asset(db, leg.asset_id)
        if _contract_size_conflict(_find_position(db, account.id, asset.id), CONTRACT_MULTIPLIER):
            raise ExecutionError(
                400,
                "MULTIPLIER_MISMATCH",
                f"{asset.symbol} is held as shares; option legs cannot net into it",
                asset_id=asset.id,
            )
        strike = float(leg.strike_price) if leg.strike_price is not None else underlying
        theo = theoretical_option_price(option_type=leg.option_type, underlying=underlying, strike=strike)
        fill = option_leg_fill(side=leg.side, theoretical_price=theo)
        leg_cost = fill.price * leg.quantity * CONTRACT_MULTIPLIER
        if leg.side == "buy":
            result.total_cost += leg_cost
        else:
            result.total_credit += leg_cost
        priced.append((leg, asset, strike, theo, fill.price, leg_cost))

    if result.is_debit and account.cash_balance < result.net_cost:
        log_event(
            logger,
            "paper.complex_order.rejected",
            severity="WARNING",
            paper_account_id=account.id,
            spread_type=req.spread_type,
            reason="INSUFFICIENT_FUNDS",
        )
        raise ExecutionError(
            400,
            "INSUFFICIENT_FUNDS",
            "Insufficient funds for spread",
            required_funds=result.net_cost,
            available_funds=account.cash_balance,
        )

    now = utc_now()
    for leg, asset, strike, theo, fill_price, leg_cost in priced:
        order = PaperOrder(
            paper_account_id=account.id,
            asset_id=asset.id,
            order_type="market",
            side=leg.side,
            quantity=leg.quantity,
            status="filled",
            filled_quantity=leg.quantity,
            filled_price=fill_price,
            filled_at=now,
        )
        db.add(order)

        position = _find_position(db, account.id, asset.id)
        position = _open_position(
            db, position, account_id=account.id, asset_id=asset.id, price=fill_price, multiplier=CONTRACT_MULTIPLIER
        )
        apply_fill(position, side=leg.side, quantity=leg.quantity, price=fill_price, mark=theo)
        db.flush()

        result.legs.append(
            LegResult(
                order=order,
                asset=asset,
                side=leg.side,
                quantity=leg.quantity,
                option_type=leg.option_type,
                strike_price=strike,
                theoretical_price=theo,
                fill_price=fill_price,
                leg_cost=leg_cost,
            )
        )

    account.cash_balance -= result.net_cost
    result.totals = refresh_account_totals(account, _account_positions(db, account.id))

    log_event(
        logger,
        "paper.complex_order.filled",
        paper_account_id=account.id,
        spread_type=req.spread_type,
        underlying=result.underlying_symbol,
        legs=len(result.legs),
        net_cost=result.net_cost,
        cash_balance=account.cash_balance,
    )
    return result
