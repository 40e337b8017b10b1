"""
Admin console API routes (admin only).

Invite code management, user management, password resets and a counts
overview for the dashboard landing page.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, require_admin
from options_desk.common.logging import log_event
from options_desk.crud import apply_updates, get_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import InviteCode, PaperOrder, PaperTradingAccount, Position, User
from options_desk.routes.auth import check_password_length
from options_desk.schemas import (
    AdminPasswordRequest,
    AdminUserUpdateRequest,
    InviteCodeCreate,
    InviteCodeOut,
    InviteCodeUpdate,
    UserOut,
)
from options_desk.security import generate_invite_code, hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# --- Invite codes ---


@router.get("/invite-codes", response_model=list[InviteCodeOut])
def list_invite_codes(
    active: Optional[bool] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    stmt = select(InviteCode)
    if active is not None:
        stmt = stmt.where(InviteCode.is_active.is_(active))
    stmt = stmt.order_by(InviteCode.created_at.desc(), InviteCode.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.post("/invite-codes", response_model=InviteCodeOut, status_code=status.HTTP_201_CREATED)
def create_invite_code(
    payload: InviteCodeCreate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    code = (payload.code or generate_invite_code()).strip()
    if db.execute(select(InviteCode.id).where(InviteCode.code == code)).first():
        bad_request("DUPLICATE_CODE", f"Invite code {code!r} already exists")

    invite = InviteCode(
        code=code,
        max_uses=payload.max_uses,
        expires_at=payload.expires_at,
        is_active=payload.is_active,
        current_uses=0,
    )
    db.add(invite)
    db.commit()
    log_event(logger, "admin.invite.created", admin_id=admin.user_id, invite_code_id=invite.id)
    return invite


@router.put("/invite-codes/{invite_id}", response_model=InviteCodeOut)
def update_invite_code(
    invite_id: int,
    payload: InviteCodeUpdate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invite = get_or_404(db, InviteCode, invite_id, "INVITE_CODE_NOT_FOUND", "Invite code")
    apply_updates(invite, payload)
    db.commit()
    return invite


@router.delete("/invite-codes/{invite_id}")
def delete_invite_code(
    invite_id: int,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invite = get_or_404(db, InviteCode, invite_id, "INVITE_CODE_NOT_FOUND", "Invite code")
    db.delete(invite)
    db.commit()
    return {"message": "Invite code deleted successfully"}


# --- Users ---


@router.get("/users", response_model=list[UserOut])
def list_users(
    search: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    stmt = select(User)
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(User.name).like(pattern), User.email.like(pattern)))
    stmt = stmt.order_by(User.created_at.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    return get_or_404(db, User, user_id, "USER_NOT_FOUND", "User")


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    payload: AdminUserUpdateRequest,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = get_or_404(db, User, user_id, "USER_NOT_FOUND", "User")
    if payload.is_admin is False and user.id == admin.user_id:
        bad_request("CANNOT_DEMOTE_SELF", "Admins cannot remove their own admin access")
    changes = apply_updates(user, payload)
    db.commit()
    log_event(logger, "admin.user.updated", admin_id=admin.user_id, user_id=user.id, fields=sorted(changes))
    return user


@router.delete("/users/{user_id}")
def delete_user(user_id: str, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    user = get_or_404(db, User, user_id, "USER_NOT_FOUND", "User")
    if user.id == admin.user_id:
        bad_request("CANNOT_DELETE_SELF", "Admins cannot delete their own account")
    db.delete(user)
    db.commit()
    log_event(logger, "admin.user.deleted", admin_id=admin.user_id, user_id=user_id)
    return {"message": "User deleted successfully"}


@router.post("/users/{user_id}/password")
def update_user_password(
    user_id: str,
    payload: AdminPasswordRequest,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = get_or_404(db, User, user_id, "USER_NOT_FOUND", "User")
    check_password_length(payload.new_password)
    user.password_hash = hash_password(payload.new_password)
    db.commit()
    log_event(logger, "admin.user.password_reset", admin_id=admin.user_id, user_id=user.id)
    return {"message": "Password updated successfully", "user_id": user.id}


@router.get("/overview")
def overview(admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    def count(stmt) -> int:
        return int(db.execute(stmt).scalar_one())

    return {
        "users": count(select(func.count(User.id))),
        "admins": count(select(func.count(User.id)).where(User.is_admin.is_(True))),
        "active_paper_accounts": count(
            select(func.count(PaperTradingAccount.id)).where(PaperTradingAccount.is_active.is_(True))
        ),
        "filled_paper_orders": count(select(func.count(PaperOrder.id)).where(PaperOrder.status == "filled")),
        "open_positions": count(select(func.count(Position.id)).where(Position.status == "open")),
        "active_invite_codes": count(select(func.count(InviteCode.id)).where(InviteCode.is_active.is_(True))),
    }
