"""
Live position bookkeeping.

Positions are user-entered records (no broker sync); unrealized P&L is
re-derived whenever the current price moves.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.crud import apply_updates, get_or_404, get_owned_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import Asset, Position, Strategy
from options_desk.schemas import PositionClose, PositionCreate, PositionOut, PositionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/positions", tags=["positions"])


def _unrealized(position: Position) -> float:
    if position.current_price is None:
        return 0.0
    return (position.current_price - position.entry_price) * position.quantity


@router.get("", response_model=list[PositionOut])
def list_positions(
    status_filter: Optional[Literal["open", "closed"]] = Query(default=None, alias="status"),
    strategy_id: Optional[int] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Position).where(Position.user_id == auth.user_id)
    if status_filter:
        stmt = stmt.where(Position.status == status_filter)
    if strategy_id is not None:
        stmt = stmt.where(Position.strategy_id == strategy_id)
    return db.execute(stmt.order_by(Position.opened_at.desc(), Position.id.desc())).scalars().all()


@router.get("/open", response_model=list[PositionOut])
def list_open_positions(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    stmt = (
        select(Position)
        .where(Position.user_id == auth.user_id, Position.status == "open")
        .order_by(Position.opened_at.desc(), Position.id.desc())
    )
    return db.execute(stmt).scalars().all()


@router.get("/{position_id}", response_model=PositionOut)
def get_position(position_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_owned_or_404(db, Position, position_id, auth, "POSITION_NOT_FOUND", "Position")


@router.post("", response_model=PositionOut, status_code=status.HTTP_201_CREATED)
def create_position(
    payload: PositionCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    if payload.strategy_id is not None:
        get_owned_or_404(db, Strategy, payload.strategy_id, auth, "STRATEGY_NOT_FOUND", "Strategy")
    if payload.asset_id is not None:
        get_or_404(db, Asset, payload.asset_id, "ASSET_NOT_FOUND", "Asset")

    position = Position(user_id=auth.user_id, status="open", **payload.model_dump())
    position.unrealized_pnl = _unrealized(position)
    db.add(position)
    db.commit()
    log_event(logger, "position.opened", user_id=auth.user_id, position_id=position.id)
    return position


@router.put("/{position_id}", response_model=PositionOut)
def update_position(
    position_id: int,
    payload: PositionUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    position = get_owned_or_404(db, Position, position_id, auth, "POSITION_NOT_FOUND", "Position")
    if position.status == "closed":
        bad_request("POSITION_CLOSED", "Closed positions cannot be modified")
    changes = apply_updates(position, payload)
    if {"current_price", "quantity"} & changes.keys():
        position.unrealized_pnl = _unrealized(position)
    db.commit()
    return position


@router.post("/{position_id}/close", response_model=PositionOut)
def close_position(
    position_id: int,
    payload: Optional[PositionClose] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    position = get_owned_or_404(db, Position, position_id, auth, "POSITION_NOT_FOUND", "Position")
    if position.status == "closed":
        bad_request("POSITION_ALREADY_CLOSED", "Position is already closed")

    if payload is not None and payload.exit_price is not None:
        position.current_price = payload.exit_price
        position.unrealized_pnl = _unrealized(position)
    position.status = "closed"
    position.closed_at = utc_now()
    db.commit()
    log_event(
        logger,
        "position.closed",
        user_id=auth.user_id,
        position_id=position.id,
        pnl=position.unrealized_pnl,
    )
    return position


@router.delete("/{position_id}")
def delete_position(position_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    position = get_owned_or_404(db, Position, position_id, auth, "POSITION_NOT_FOUND", "Position")
    db.delete(position)
    db.commit()
    return {"message": "Position deleted successfully"}
