"""
Paper trading account API routes.

GET    /api/paper-trading/accounts                 - List accounts
POST   /api/paper-trading/accounts/initialize      - Open the caller's simulated account
POST   /api/paper-trading/accounts/{id}/reset      - Back to the starting balance
GET    /api/paper-trading/accounts/{id}/portfolio  - Positions + equity summary
GET    /api/paper-trading/accounts/{id}/history    - Orders + P&L summary
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import ensure_aware_utc
from options_desk.config import MAX_PAPER_BALANCE, MIN_PAPER_BALANCE, get_settings
from options_desk.crud import apply_updates
from options_desk.db import get_db
from options_desk.errors import api_error, bad_request
from options_desk.models import PaperTradingAccount
from options_desk.paper.execution import ExecutionError, load_account
from options_desk.paper.reports import build_history, build_portfolio, reset_account
from options_desk.schemas import (
    OrderSide,
    OrderStatus,
    PaperAccountCreate,
    PaperAccountInitialize,
    PaperAccountOut,
    PaperAccountUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paper-trading/accounts", tags=["paper-trading"])


def owned_account(
    db: Session, account_id: int, auth: AuthContext, *, for_update: bool = False
) -> PaperTradingAccount:
    try:
        return load_account(db, account_id, user_id=auth.user_id, is_admin=auth.is_admin, for_update=for_update)
    except ExecutionError as e:
        raise api_error(e.status_code, e.code, e.message, **e.extra) from e


@router.get("", response_model=list[PaperAccountOut])
def list_accounts(
    user_id: Optional[str] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Admins may list every account (optionally for one user); others see their own."""
    stmt = select(PaperTradingAccount)
    if not auth.is_admin:
        stmt = stmt.where(PaperTradingAccount.user_id == auth.user_id)
    elif user_id:
        stmt = stmt.where(PaperTradingAccount.user_id == user_id)
    return db.execute(stmt.order_by(PaperTradingAccount.created_at.desc())).scalars().all()


@router.post("", response_model=PaperAccountOut, status_code=status.HTTP_201_CREATED)
def create_account(
    payload: PaperAccountCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    account = PaperTradingAccount(
        user_id=auth.user_id,
        cash_balance=payload.cash_balance,
        initial_balance=payload.initial_balance,
        total_equity=payload.cash_balance,
        total_pnl=0.0,
        is_active=True,
    )
    db.add(account)
    db.commit()
    log_event(logger, "paper.account.created", user_id=auth.user_id, paper_account_id=account.id)
    return account


@router.post("/initialize", status_code=status.HTTP_201_CREATED)
def initialize_account(
    payload: Optional[PaperAccountInitialize] = None,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    balance = get_settings().default_paper_balance
    if payload is not None and payload.initial_balance is not None:
        balance = float(payload.initial_balance)
    if not (MIN_PAPER_BALANCE <= balance <= MAX_PAPER_BALANCE):
        bad_request(
            "INVALID_INITIAL_BALANCE",
            f"Initial balance must be between ${MIN_PAPER_BALANCE:,.0f} and ${MAX_PAPER_BALANCE:,.0f}",
        )

    existing = db.execute(
        select(PaperTradingAccount).where(
            PaperTradingAccount.user_id == auth.user_id,
            PaperTradingAccount.is_active.is_(True),
        )
    ).scalars().first()
    if existing is not None:
        bad_request(
            "ACCOUNT_ALREADY_EXISTS",
            "User already has an active paper trading account",
            account_id=existing.id,
        )

    account = PaperTradingAccount(
        user_id=auth.user_id,
        cash_balance=balance,
        initial_balance=balance,
        total_equity=balance,
        total_pnl=0.0,
        is_active=True,
    )
    db.add(account)
    db.commit()
    log_event(logger, "paper.account.initialized", user_id=auth.user_id, paper_account_id=account.id, balance=balance)
    return {
        "message": "Paper trading account initialized successfully",
        "account": PaperAccountOut.model_validate(account),
    }


@router.get("/{account_id}", response_model=PaperAccountOut)
def get_account(account_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return owned_account(db, account_id, auth)


@router.put("/{account_id}", response_model=PaperAccountOut)
def update_account(
    account_id: int,
    payload: PaperAccountUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    account = owned_account(db, account_id, auth, for_update=True)
    apply_updates(account, payload)
    db.commit()
    return account


@router.delete("/{account_id}")
def delete_account(account_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    account = owned_account(db, account_id, auth)
    db.delete(account)
    db.commit()
    log_event(logger, "paper.account.deleted", user_id=auth.user_id, paper_account_id=account_id)
    return {"message": "Paper trading account deleted successfully"}


@router.post("/{account_id}/reset")
def reset(account_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    account = owned_account(db, account_id, auth, for_update=True)
    counts = reset_account(db, account)
    db.commit()
    return {
        "message": "Paper trading account reset successfully",
        "account": PaperAccountOut.model_validate(account),
        **counts,
    }


@router.get("/{account_id}/portfolio")
def portfolio(
    account_id: int,
    include_closed: bool = False,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    account = owned_account(db, account_id, auth)
    return build_portfolio(db, account, include_closed=include_closed)


@router.get("/{account_id}/history")
def history(
    account_id: int,
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    side: Optional[OrderSide] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    account = owned_account(db, account_id, auth)
    start_date = ensure_aware_utc(start_date) if start_date else None
    end_date = ensure_aware_utc(end_date) if end_date else None
    if start_date and end_date and start_date > end_date:
        bad_request("INVALID_DATE_RANGE", "start_date must be before end_date")
    return build_history(
        db,
        account,
        status=status_filter,
        side=side,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
