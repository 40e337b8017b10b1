"""
Paper order API routes.

POST /api/paper-trading/orders/execute - Fill a stock order against a market price
POST /api/paper-trading/orders/complex - Fill a multi-leg option spread
plus CRUD/cancel over stored orders.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.crud import get_or_404, update_values
from options_desk.db import get_db
from options_desk.errors import api_error, bad_request, not_found
from options_desk.models import Asset, PaperOrder, PaperTradingAccount
from options_desk.paper.execution import (
    ComplexResult,
    ExecutionError,
    ExecutionResult,
    OrderRejected,
    execute_complex_order,
    execute_order,
)
from options_desk.routes.paper_accounts import owned_account
from options_desk.schemas import (
    ComplexOrderRequest,
    ExecuteOrderRequest,
    OrderStatus,
    PaperOrderCreate,
    PaperOrderOut,
    PaperOrderUpdate,
    PaperPositionOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paper-trading/orders", tags=["paper-trading"])


def _owned_order(db: Session, order_id: int, auth: AuthContext) -> PaperOrder:
    order = db.get(PaperOrder, order_id)
    if order is None:
        not_found("ORDER_NOT_FOUND", "Order not found")
    account = db.get(PaperTradingAccount, order.paper_account_id)
    if account is None or (account.user_id != auth.user_id and not auth.is_admin):
        not_found("ORDER_NOT_FOUND", "Order not found")
    return order


def _check_prices(order_type: str, limit_price: Optional[float], stop_price: Optional[float]) -> None:
    if order_type == "limit" and limit_price is None:
        bad_request("MISSING_LIMIT_PRICE", "Limit price is required for limit orders")
    if order_type == "stop" and stop_price is None:
        bad_request("MISSING_STOP_PRICE", "Stop price is required for stop orders")


def _execution_response(result: ExecutionResult) -> dict:
    return {
        "message": "Order executed successfully",
        "order": PaperOrderOut.model_validate(result.order),
        "execution": {
            "fill_price": result.fill_price,
            "total_cost": result.total_cost,
            "slippage": result.slippage,
            "new_cash_balance": result.totals.cash_balance,
            "total_equity": result.totals.total_equity,
            "total_pnl": result.totals.total_pnl,
        },
        "position": PaperPositionOut.model_validate(result.position) if result.position is not None else None,
    }


def _complex_response(result: ComplexResult) -> dict:
    return {
        "message": "Complex order executed successfully",
        "spread_type": result.spread_type,
        "underlying_symbol": result.underlying_symbol,
        "underlying_price": result.underlying_price,
        "legs": [
            {
                "order_id": leg.order.id,
                "asset_id": leg.asset.id,
                "symbol": leg.asset.symbol,
                "side": leg.side,
                "quantity": leg.quantity,
                "option_type": leg.option_type,
                "strike_price": leg.strike_price,
                "theoretical_price": leg.theoretical_price,
                "fill_price": leg.fill_price,
                "leg_cost": leg.leg_cost,
            }
            for leg in result.legs
        ],
        "execution": {
            "net_cost": result.net_cost,
            "is_debit_spread": result.is_debit,
            "total_cost": result.total_cost,
            "total_credit": result.total_credit,
            "new_cash_balance": result.totals.cash_balance if result.totals else None,
            "total_equity": result.totals.total_equity if result.totals else None,
        },
    }


@router.post("/execute", status_code=status.HTTP_201_CREATED)
def execute(payload: ExecuteOrderRequest, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    try:
        result = execute_order(db, payload, user_id=auth.user_id, is_admin=auth.is_admin)
    except OrderRejected as e:
        # Keep the rejected order for the history view.
        db.commit()
        raise api_error(e.status_code, e.code, e.message, **e.extra) from e
    except ExecutionError as e:
        db.rollback()
        raise api_error(e.status_code, e.code, e.message, **e.extra) from e
    db.commit()
    return _execution_response(result)


@router.post("/complex", status_code=status.HTTP_201_CREATED)
def execute_complex(
    payload: ComplexOrderRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    try:
        result = execute_complex_order(db, payload, user_id=auth.user_id, is_admin=auth.is_admin)
    except ExecutionError as e:
        db.rollback()
        raise api_error(e.status_code, e.code, e.message, **e.extra) from e
    db.commit()
    return _complex_response(result)


@router.get("", response_model=list[PaperOrderOut])
def list_orders(
    paper_account_id: Optional[int] = None,
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(PaperOrder)
    if paper_account_id is not None:
        owned_account(db, paper_account_id, auth)
        stmt = stmt.where(PaperOrder.paper_account_id == paper_account_id)
    elif not auth.is_admin:
        stmt = stmt.join(PaperTradingAccount, PaperOrder.paper_account_id == PaperTradingAccount.id).where(
            PaperTradingAccount.user_id == auth.user_id
        )
    if status_filter:
        stmt = stmt.where(PaperOrder.status == status_filter)
    stmt = stmt.order_by(PaperOrder.created_at.desc(), PaperOrder.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/{order_id}", response_model=PaperOrderOut)
def get_order(order_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return _owned_order(db, order_id, auth)


@router.post("", response_model=PaperOrderOut, status_code=status.HTTP_201_CREATED)
def create_order(payload: PaperOrderCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Store a pending order without filling it."""
    _check_prices(payload.order_type, payload.limit_price, payload.stop_price)
    owned_account(db, payload.paper_account_id, auth)
    get_or_404(db, Asset, payload.asset_id, "ASSET_NOT_FOUND", "Asset")

    order = PaperOrder(**payload.model_dump(), status="pending", filled_quantity=0)
    db.add(order)
    db.commit()
    return order


@router.put("/{order_id}", response_model=PaperOrderOut)
def update_order(
    order_id: int,
    payload: PaperOrderUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    order = _owned_order(db, order_id, auth)
    changes = update_values(order, payload)

    filled_quantity = changes.get("filled_quantity")
    if filled_quantity is not None:
        if filled_quantity < 0:
            bad_request("INVALID_FILLED_QUANTITY", "Filled quantity cannot be negative")
        if filled_quantity > order.quantity:
            bad_request("FILLED_QUANTITY_EXCEEDS_QUANTITY", "Filled quantity cannot exceed order quantity")

    for key, value in changes.items():
        setattr(order, key, value)
    if order.status == "filled" and order.filled_at is None:
        order.filled_at = utc_now()
    db.commit()
    return order


@router.post("/{order_id}/cancel", response_model=PaperOrderOut)
def cancel_order(order_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    order = _owned_order(db, order_id, auth)
    if order.status not in ("pending", "partial"):
        bad_request("ORDER_NOT_CANCELABLE", f"Order is {order.status} and cannot be canceled")
    order.status = "canceled"
    db.commit()
    log_event(logger, "paper.order.canceled", order_id=order.id, paper_account_id=order.paper_account_id)
    return order


@router.delete("/{order_id}")
def delete_order(order_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    order = _owned_order(db, order_id, auth)
    db.delete(order)
    db.commit()
    return {"message": "Order deleted successfully"}
