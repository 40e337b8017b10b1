"""
Bearer-session authentication dependencies.

Every /api route except health, register, login and invite validation
requires `Authorization: Bearer <token>`. Admin routes additionally require
`users.is_admin`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.db import get_db
from options_desk.models import User, UserSession
from options_desk.security import hash_session_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthContext:
    user: User
    session: UserSession

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return bool(self.user.is_admin)


def auth_exception(message: str = "Authentication required", code: str = "UNAUTHORIZED") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": message, "code": code},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_bearer_token(authorization: str | None = Header(default=None, alias="Authorization")) -> str:
    if not authorization:
        raise auth_exception()
    scheme, _, token = authorization.partition(" ")
    if scheme.strip().lower() != "bearer" or not token.strip():
        raise auth_exception("Invalid authorization header", "INVALID_AUTH_HEADER")
    return token.strip()


def get_auth_context(
    bearer_token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> AuthContext:
    session = db.execute(
        select(UserSession).where(
            UserSession.token_hash == hash_session_token(bearer_token),
            UserSession.revoked_at.is_(None),
            UserSession.expires_at > utc_now(),
        )
    ).scalar_one_or_none()
    if session is None:
        raise auth_exception("Session is invalid or expired", "SESSION_INVALID")
    user = db.get(User, session.user_id)
    if user is None:
        raise auth_exception("User not found", "SESSION_INVALID")
    return AuthContext(user=user, session=session)


def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.is_admin:
        log_event(logger, "auth.admin.denied", severity="WARNING", user_id=auth.user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Admin access required", "code": "FORBIDDEN"},
        )
    return auth
