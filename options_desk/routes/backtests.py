"""
Backtest result API routes.

Backtests are run by an external process; these routes persist the run
record, its trades and its daily equity curve, and read them back.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import ensure_aware_utc, parse_day, utc_now
from options_desk.crud import apply_updates, get_owned_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import Backtest, BacktestDailyMetric, BacktestTrade, Strategy
from options_desk.schemas import (
    BacktestCreate,
    BacktestOut,
    BacktestSide,
    BacktestStatus,
    BacktestTradeIn,
    BacktestTradeOut,
    BacktestTradeType,
    BacktestUpdate,
    DailyMetricIn,
    DailyMetricOut,
    ExitReason,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backtests", tags=["backtests"])

TERMINAL_STATUSES = ("completed", "failed")


def _owned_backtest(db: Session, backtest_id: int, auth: AuthContext) -> Backtest:
    return get_owned_or_404(db, Backtest, backtest_id, auth, "BACKTEST_NOT_FOUND", "Backtest")


def _check_day(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    try:
        parse_day(value)
    except ValueError:
        bad_request("INVALID_DATE_FORMAT", f"{field} must be formatted as YYYY-MM-DD")
    return value


def summarize_trades(trades: list[BacktestTrade]) -> dict:
    pnls = [t.pnl for t in trades if t.pnl is not None]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    return {
        "trade_count": len(trades),
        "winning_trades": len(wins),
        "losing_trades": len(losses),
        "win_rate": round(len(wins) / len(pnls) * 100, 2) if pnls else 0.0,
        "profit_factor": round(gross_profit / gross_loss, 4) if gross_loss else None,
        "average_win": gross_profit / len(wins) if wins else 0.0,
        "average_loss": -gross_loss / len(losses) if losses else 0.0,
        "total_pnl": sum(pnls),
        "total_commission": sum(t.commission or 0.0 for t in trades),
    }


@router.get("", response_model=list[BacktestOut])
def list_backtests(
    strategy_id: Optional[int] = None,
    status_filter: Optional[BacktestStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Backtest).where(Backtest.user_id == auth.user_id)
    if strategy_id is not None:
        stmt = stmt.where(Backtest.strategy_id == strategy_id)
    if status_filter:
        stmt = stmt.where(Backtest.status == status_filter)
    stmt = stmt.order_by(Backtest.created_at.desc(), Backtest.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/{backtest_id}", response_model=BacktestOut)
def get_backtest(backtest_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return _owned_backtest(db, backtest_id, auth)


@router.post("", response_model=BacktestOut, status_code=status.HTTP_201_CREATED)
def create_backtest(payload: BacktestCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    get_owned_or_404(db, Strategy, payload.strategy_id, auth, "STRATEGY_NOT_FOUND", "Strategy")
    start, end = ensure_aware_utc(payload.start_date), ensure_aware_utc(payload.end_date)
    if start >= end:
        bad_request("INVALID_DATE_RANGE", "start_date must be before end_date")

    backtest = Backtest(
        user_id=auth.user_id,
        strategy_id=payload.strategy_id,
        name=payload.name.strip(),
        start_date=start,
        end_date=end,
        initial_capital=payload.initial_capital,
        configuration=payload.configuration,
        status=payload.status,
        completed_at=utc_now() if payload.status in TERMINAL_STATUSES else None,
    )
    db.add(backtest)
    db.commit()
    log_event(logger, "backtest.created", user_id=auth.user_id, backtest_id=backtest.id)
    return backtest


@router.put("/{backtest_id}", response_model=BacktestOut)
def update_backtest(
    backtest_id: int,
    payload: BacktestUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Store results; reaching completed/failed stamps `completed_at`."""
    backtest = _owned_backtest(db, backtest_id, auth)
    changes = apply_updates(backtest, payload)
    if changes.get("status") in TERMINAL_STATUSES and backtest.completed_at is None:
        backtest.completed_at = utc_now()
    db.commit()
    if "status" in changes:
        log_event(logger, "backtest.status", backtest_id=backtest.id, status=backtest.status)
    return backtest


@router.delete("/{backtest_id}")
def delete_backtest(backtest_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    backtest = _owned_backtest(db, backtest_id, auth)
    db.delete(backtest)
    db.commit()
    return {"message": "Backtest deleted successfully"}


@router.get("/{backtest_id}/trades", response_model=list[BacktestTradeOut])
def list_backtest_trades(
    backtest_id: int,
    symbol: Optional[str] = None,
    trade_type: Optional[BacktestTradeType] = None,
    side: Optional[BacktestSide] = None,
    exit_reason: Optional[ExitReason] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    _owned_backtest(db, backtest_id, auth)
    stmt = select(BacktestTrade).where(BacktestTrade.backtest_id == backtest_id)
    if symbol:
        stmt = stmt.where(BacktestTrade.symbol == symbol.strip().upper())
    if trade_type:
        stmt = stmt.where(BacktestTrade.trade_type == trade_type)
    if side:
        stmt = stmt.where(BacktestTrade.side == side)
    if exit_reason:
        stmt = stmt.where(BacktestTrade.exit_reason == exit_reason)
    stmt = stmt.order_by(BacktestTrade.entry_time, BacktestTrade.id).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.post("/{backtest_id}/trades", response_model=list[BacktestTradeOut], status_code=status.HTTP_201_CREATED)
def add_backtest_trades(
    backtest_id: int,
    payload: list[BacktestTradeIn],
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    _owned_backtest(db, backtest_id, auth)
    trades = []
    for item in payload:
        data = item.model_dump()
        data["symbol"] = data["symbol"].strip().upper()
        trades.append(BacktestTrade(backtest_id=backtest_id, **data))
    db.add_all(trades)
    db.commit()
    return trades


@router.get("/{backtest_id}/metrics", response_model=list[DailyMetricOut])
def list_daily_metrics(
    backtest_id: int,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    limit: int = Query(default=500, ge=1, le=1000),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    _owned_backtest(db, backtest_id, auth)
    stmt = select(BacktestDailyMetric).where(BacktestDailyMetric.backtest_id == backtest_id)
    # YYYY-MM-DD strings sort chronologically.
    if _check_day(start_date, "start_date"):
        stmt = stmt.where(BacktestDailyMetric.date >= start_date)
    if _check_day(end_date, "end_date"):
        stmt = stmt.where(BacktestDailyMetric.date <= end_date)
    return db.execute(stmt.order_by(BacktestDailyMetric.date).limit(limit)).scalars().all()


@router.post("/{backtest_id}/metrics", response_model=list[DailyMetricOut], status_code=status.HTTP_201_CREATED)
def upsert_daily_metrics(
    backtest_id: int,
    payload: list[DailyMetricIn],
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    _owned_backtest(db, backtest_id, auth)
    for item in payload:
        _check_day(item.date, "date")

    existing = {
        m.date: m
        for m in db.execute(
            select(BacktestDailyMetric).where(
                BacktestDailyMetric.backtest_id == backtest_id,
                BacktestDailyMetric.date.in_([item.date for item in payload]),
            )
        ).scalars()
    }
    out = []
    for item in payload:
        metric = existing.get(item.date)
        if metric is None:
            metric = BacktestDailyMetric(backtest_id=backtest_id, **item.model_dump())
            db.add(metric)
            existing[item.date] = metric
        else:
            apply_updates(metric, item)
        out.append(metric)
    db.commit()
    return out


@router.get("/{backtest_id}/summary")
def backtest_summary(backtest_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    backtest = _owned_backtest(db, backtest_id, auth)
    trades = list(db.execute(select(BacktestTrade).where(BacktestTrade.backtest_id == backtest_id)).scalars())
    return {
        "backtest": BacktestOut.model_validate(backtest),
        "trades": summarize_trades(trades),
    }
