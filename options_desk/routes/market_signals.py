"""
Market signal API routes.

GET /api/market-signals/active - Signals with no expiry or an expiry in the future
GET /api/market-signals/symbol/{symbol} - Signals for one symbol
Writes are admin-only; strength and confidence must lie in [0, 1].
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context, require_admin
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.crud import apply_updates, get_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import MarketSignal
from options_desk.schemas import MarketSignalCreate, MarketSignalOut, MarketSignalUpdate, SignalType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/market-signals", tags=["market-signals"])


def _check_unit_interval(strength: Optional[float], confidence: Optional[float]) -> None:
    if strength is not None and not 0.0 <= strength <= 1.0:
        bad_request("INVALID_STRENGTH", "Strength must be between 0 and 1")
    if confidence is not None and not 0.0 <= confidence <= 1.0:
        bad_request("INVALID_CONFIDENCE", "Confidence must be between 0 and 1")


def _active_clause():
    return or_(MarketSignal.expires_at.is_(None), MarketSignal.expires_at > utc_now())


@router.get("", response_model=list[MarketSignalOut])
def list_signals(
    symbol: Optional[str] = None,
    signal_type: Optional[SignalType] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(MarketSignal)
    if symbol:
        stmt = stmt.where(MarketSignal.symbol == symbol.strip().upper())
    if signal_type:
        stmt = stmt.where(MarketSignal.signal_type == signal_type)
    stmt = stmt.order_by(MarketSignal.created_at.desc(), MarketSignal.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/active", response_model=list[MarketSignalOut])
def active_signals(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    stmt = select(MarketSignal).where(_active_clause()).order_by(MarketSignal.created_at.desc(), MarketSignal.id.desc())
    return db.execute(stmt).scalars().all()


@router.get("/symbol/{symbol}", response_model=list[MarketSignalOut])
def signals_for_symbol(
    symbol: str,
    active_only: bool = True,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(MarketSignal).where(MarketSignal.symbol == symbol.strip().upper())
    if active_only:
        stmt = stmt.where(_active_clause())
    return db.execute(stmt.order_by(MarketSignal.created_at.desc(), MarketSignal.id.desc())).scalars().all()


@router.get("/{signal_id}", response_model=MarketSignalOut)
def get_signal(signal_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_or_404(db, MarketSignal, signal_id, "SIGNAL_NOT_FOUND", "Market signal")


@router.post("", response_model=MarketSignalOut, status_code=status.HTTP_201_CREATED)
def create_signal(payload: MarketSignalCreate, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    _check_unit_interval(payload.strength, payload.confidence)
    data = payload.model_dump()
    data["symbol"] = data["symbol"].strip().upper()
    signal = MarketSignal(**data)
    db.add(signal)
    db.commit()
    log_event(logger, "market_signal.created", signal_id=signal.id, symbol=signal.symbol, signal_type=signal.signal_type)
    return signal


@router.put("/{signal_id}", response_model=MarketSignalOut)
def update_signal(
    signal_id: int,
    payload: MarketSignalUpdate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    signal = get_or_404(db, MarketSignal, signal_id, "SIGNAL_NOT_FOUND", "Market signal")
    _check_unit_interval(payload.strength, payload.confidence)
    apply_updates(signal, payload)
    db.commit()
    return signal


@router.delete("/{signal_id}")
def delete_signal(signal_id: int, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    signal = get_or_404(db, MarketSignal, signal_id, "SIGNAL_NOT_FOUND", "Market signal")
    db.delete(signal)
    db.commit()
    return {"message": "Market signal deleted successfully"}
