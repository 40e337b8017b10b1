import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.crud import get_or_404, get_owned_or_404
from options_desk.db import get_db
from options_desk.models import Asset, Position, Trade
from options_desk.schemas import TradeCreate, TradeOut, TradeType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trades", tags=["trades"])


@router.get("", response_model=list[TradeOut])
def list_trades(
    position_id: Optional[int] = None,
    trade_type: Optional[TradeType] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Trade).where(Trade.user_id == auth.user_id)
    if position_id is not None:
        stmt = stmt.where(Trade.position_id == position_id)
    if trade_type:
        stmt = stmt.where(Trade.trade_type == trade_type)
    stmt = stmt.order_by(Trade.executed_at.desc(), Trade.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/{trade_id}", response_model=TradeOut)
def get_trade(trade_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_owned_or_404(db, Trade, trade_id, auth, "TRADE_NOT_FOUND", "Trade")


@router.post("", response_model=TradeOut, status_code=status.HTTP_201_CREATED)
def create_trade(payload: TradeCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    """Record a fill against a live position (buy, sell, roll or hedge)."""
    if payload.position_id is not None:
        get_owned_or_404(db, Position, payload.position_id, auth, "POSITION_NOT_FOUND", "Position")
    if payload.asset_id is not None:
        get_or_404(db, Asset, payload.asset_id, "ASSET_NOT_FOUND", "Asset")

    data = payload.model_dump()
    data["executed_at"] = data["executed_at"] or utc_now()
    trade = Trade(user_id=auth.user_id, **data)
    db.add(trade)
    db.commit()
    log_event(
        logger,
        "trade.recorded",
        user_id=auth.user_id,
        trade_id=trade.id,
        trade_type=trade.trade_type,
        quantity=trade.quantity,
        price=trade.price,
    )
    return trade


@router.delete("/{trade_id}")
def delete_trade(trade_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    trade = get_owned_or_404(db, Trade, trade_id, auth, "TRADE_NOT_FOUND", "Trade")
    db.delete(trade)
    db.commit()
    return {"message": "Trade deleted successfully"}
