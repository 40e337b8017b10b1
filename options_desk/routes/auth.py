"""
Auth API routes.

POST /api/auth/register - Create an account (invite code gated)
POST /api/auth/login    - Exchange email/password for a bearer token
POST /api/auth/logout   - Revoke the current token
GET  /api/auth/me       - Current user
POST /api/auth/password - Change own password
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, auth_exception, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.config import get_settings
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.invites import check_invite_code, consume_invite
from options_desk.models import User, UserSession
from options_desk.schemas import AuthSessionOut, LoginRequest, PasswordChangeRequest, RegisterRequest, UserOut
from options_desk.security import (
    MIN_PASSWORD_LENGTH,
    generate_session_token,
    hash_password,
    hash_session_token,
    session_expiry_from_now,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        bad_request(
            "INVALID_PASSWORD_LENGTH",
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )


def issue_session(db: Session, user: User) -> AuthSessionOut:
    token = generate_session_token()
    expires_at = session_expiry_from_now(get_settings().session_ttl_hours)
    db.add(UserSession(user_id=user.id, token_hash=hash_session_token(token), expires_at=expires_at))
    return AuthSessionOut(access_token=token, expires_at=expires_at, user=UserOut.model_validate(user))


@router.post("/register", response_model=AuthSessionOut, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    settings = get_settings()
    check_password_length(payload.password)

    if db.execute(select(User.id).where(User.email == payload.email)).first():
        bad_request("EMAIL_EXISTS", "An account with this email already exists")

    invite = None
    if settings.require_invite_code or payload.invite_code:
        check = check_invite_code(db, payload.invite_code, for_update=True)
        if not check.valid:
            log_event(logger, "auth.register.invite_rejected", severity="WARNING", reason=check.reason)
            bad_request(check.reason, check.message)
        invite = check.invite

    user = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        is_admin=settings.is_admin_email(payload.email),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        bad_request("EMAIL_EXISTS", "An account with this email already exists")

    if invite is not None:
        consume_invite(invite, user_id=user.id)

    out = issue_session(db, user)
    db.commit()
    log_event(logger, "auth.registered", user_id=user.id, is_admin=user.is_admin)
    return out


@router.post("/login", response_model=AuthSessionOut)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if user is None or not verify_password(payload.password, user.password_hash):
        log_event(logger, "auth.login.failed", severity="WARNING")
        raise auth_exception("Invalid email or password", "INVALID_CREDENTIALS")

    out = issue_session(db, user)
    db.commit()
    log_event(logger, "auth.login", user_id=user.id)
    return out


@router.post("/logout")
def logout(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    auth.session.revoked_at = utc_now()
    db.commit()
    log_event(logger, "auth.logout", user_id=auth.user_id)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserOut)
def me(auth: AuthContext = Depends(get_auth_context)):
    return auth.user


@router.post("/password")
def change_password(
    payload: PasswordChangeRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    user = auth.user
    if not verify_password(payload.current_password, user.password_hash):
        bad_request("INVALID_PASSWORD", "Current password is incorrect")
    if payload.current_password == payload.new_password:
        bad_request("PASSWORD_UNCHANGED", "New password must be different from current password")
    check_password_length(payload.new_password)

    user.password_hash = hash_password(payload.new_password)
    db.commit()
    log_event(logger, "auth.password.changed", user_id=user.id)
    return {"message": "Password updated successfully"}
