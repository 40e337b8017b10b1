import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.crud import apply_updates, get_owned_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import Strategy
from options_desk.schemas import StrategyCreate, StrategyOut, StrategyUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/strategies", tags=["strategies"])


@router.get("", response_model=list[StrategyOut])
def list_strategies(
    is_active: Optional[bool] = None,
    sort_by: Literal["created_at", "name"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Strategy).where(Strategy.user_id == auth.user_id)
    if is_active is not None:
        stmt = stmt.where(Strategy.is_active.is_(is_active))
    column = Strategy.name if sort_by == "name" else Strategy.created_at
    stmt = stmt.order_by(column.asc() if order == "asc" else column.desc(), Strategy.id)
    return db.execute(stmt).scalars().all()


@router.get("/{strategy_id}", response_model=StrategyOut)
def get_strategy(strategy_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_owned_or_404(db, Strategy, strategy_id, auth, "STRATEGY_NOT_FOUND", "Strategy")


@router.post("", response_model=StrategyOut, status_code=status.HTTP_201_CREATED)
def create_strategy(
    payload: StrategyCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    name = payload.name.strip()
    if not name:
        bad_request("INVALID_NAME", "Strategy name must not be blank")

    strategy = Strategy(
        user_id=auth.user_id,
        name=name,
        strategy_type=payload.strategy_type,
        description=payload.description,
        parameters=payload.parameters,
        performance={},
        is_active=payload.is_active,
    )
    db.add(strategy)
    db.commit()
    log_event(logger, "strategy.created", user_id=auth.user_id, strategy_id=strategy.id)
    return strategy


@router.put("/{strategy_id}", response_model=StrategyOut)
def update_strategy(
    strategy_id: int,
    payload: StrategyUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    strategy = get_owned_or_404(db, Strategy, strategy_id, auth, "STRATEGY_NOT_FOUND", "Strategy")
    if payload.name is not None:
        payload.name = payload.name.strip()
        if not payload.name:
            bad_request("INVALID_NAME", "Strategy name must not be blank")
    apply_updates(strategy, payload)
    db.commit()
    return strategy


@router.delete("/{strategy_id}")
def delete_strategy(strategy_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    strategy = get_owned_or_404(db, Strategy, strategy_id, auth, "STRATEGY_NOT_FOUND", "Strategy")
    db.delete(strategy)
    db.commit()
    log_event(logger, "strategy.deleted", user_id=auth.user_id, strategy_id=strategy_id)
    return {"message": "Strategy deleted successfully"}
