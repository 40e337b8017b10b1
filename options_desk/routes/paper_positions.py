"""
Paper position API routes.

GET /api/paper-trading/positions - Positions in the caller's paper accounts
PUT /api/paper-trading/positions/{id} - Adjust quantity/cost/mark; unrealized P&L is recomputed
plus get/create/delete. Admins may act on any account.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.crud import get_or_404, update_values
from options_desk.db import get_db
from options_desk.errors import bad_request, not_found
from options_desk.models import Asset, PaperPosition, PaperTradingAccount
from options_desk.paper.ledger import unrealized_pnl
from options_desk.routes.paper_accounts import owned_account
from options_desk.schemas import PaperPositionCreate, PaperPositionOut, PaperPositionUpdate

router = APIRouter(prefix="/paper-trading/positions", tags=["paper-trading"])


def _owned_position(db: Session, position_id: int, auth: AuthContext) -> PaperPosition:
    position = db.get(PaperPosition, position_id)
    if position is None:
        not_found("POSITION_NOT_FOUND", "Position not found")
    account = db.get(PaperTradingAccount, position.paper_account_id)
    if account is None or (account.user_id != auth.user_id and not auth.is_admin):
        not_found("POSITION_NOT_FOUND", "Position not found")
    return position


@router.get("", response_model=list[PaperPositionOut])
def list_positions(
    paper_account_id: Optional[int] = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(PaperPosition)
    if paper_account_id is not None:
        owned_account(db, paper_account_id, auth)
        stmt = stmt.where(PaperPosition.paper_account_id == paper_account_id)
    elif not auth.is_admin:
        stmt = stmt.join(PaperTradingAccount, PaperPosition.paper_account_id == PaperTradingAccount.id).where(
            PaperTradingAccount.user_id == auth.user_id
        )
    stmt = stmt.order_by(PaperPosition.last_updated.desc(), PaperPosition.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/{position_id}", response_model=PaperPositionOut)
def get_position(position_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return _owned_position(db, position_id, auth)


@router.post("", response_model=PaperPositionOut, status_code=status.HTTP_201_CREATED)
def create_position(
    payload: PaperPositionCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    if payload.quantity == 0:
        bad_request("QUANTITY_ZERO", "Quantity cannot be zero")
    owned_account(db, payload.paper_account_id, auth)
    get_or_404(db, Asset, payload.asset_id, "ASSET_NOT_FOUND", "Asset")

    position = PaperPosition(**payload.model_dump(), realized_pnl=0.0, multiplier=1)
    position.unrealized_pnl = unrealized_pnl(position) if payload.current_price is not None else 0.0
    db.add(position)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        bad_request("DUPLICATE_POSITION", "Account already holds a position in this asset")
    return position


@router.put("/{position_id}", response_model=PaperPositionOut)
def update_position(
    position_id: int,
    payload: PaperPositionUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    position = _owned_position(db, position_id, auth)
    changes = update_values(position, payload)
    if changes.get("quantity") == 0:
        bad_request("QUANTITY_ZERO", "Quantity cannot be zero")
    for key, value in changes.items():
        setattr(position, key, value)
    if {"current_price", "quantity", "average_cost"} & changes.keys():
        position.unrealized_pnl = unrealized_pnl(position)
    db.commit()
    return position


@router.delete("/{position_id}")
def delete_position(position_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    position = _owned_position(db, position_id, auth)
    db.delete(position)
    db.commit()
    return {"message": "Position deleted successfully"}
