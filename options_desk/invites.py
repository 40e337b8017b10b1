"""
Invite-code evaluation and consumption.

Checks run in a fixed order: presence, existence, active flag, expiry,
remaining uses. The first failing check decides the reason code.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.models import InviteCode

logger = logging.getLogger(__name__)

REASON_MESSAGES = {
    "MISSING_CODE": "Invite code is required",
    "INVALID_CODE": "Invite code must be a non-empty string",
    "CODE_NOT_FOUND": "Invalid invite code",
    "CODE_INACTIVE": "This invite code is no longer active",
    "CODE_EXPIRED": "This invite code has expired",
    "CODE_MAX_USES_REACHED": "This invite code has reached its maximum number of uses",
}


@dataclass(frozen=True)
class InviteCheck:
    valid: bool
    reason: Optional[str]
    message: str
    invite: Optional[InviteCode] = None

    def to_dict(self) -> dict:
        if self.valid:
            return {"valid": True, "code": self.invite.code if self.invite else None, "message": self.message}
        return {"valid": False, "reason": self.reason, "message": self.message}


def _fail(reason: str) -> InviteCheck:
    return InviteCheck(valid=False, reason=reason, message=REASON_MESSAGES[reason])


def evaluate_invite(invite: Optional[InviteCode], *, now: datetime | None = None) -> InviteCheck:
    if invite is None:
        return _fail("CODE_NOT_FOUND")
    if not invite.is_active:
        return _fail("CODE_INACTIVE")
    if invite.expires_at is not None and invite.expires_at <= (now or utc_now()):
        return _fail("CODE_EXPIRED")
    if invite.current_uses >= invite.max_uses:
        return _fail("CODE_MAX_USES_REACHED")
    return InviteCheck(valid=True, reason=None, message="Invite code is valid", invite=invite)


def check_invite_code(db: Session, raw_code: str | None, *, for_update: bool = False) -> InviteCheck:
    if raw_code is None:
        return _fail("MISSING_CODE")
    code = raw_code.strip()
    if not code:
        return _fail("INVALID_CODE")
    stmt = select(InviteCode).where(InviteCode.code == code)
    if for_update:
        stmt = stmt.with_for_update()
    return evaluate_invite(db.execute(stmt).scalar_one_or_none())


def consume_invite(invite: InviteCode, *, user_id: str) -> int:
    """Count one use against `invite`; returns the remaining uses."""
    invite.current_uses += 1
    if invite.used_by_user_id is None:
        invite.used_by_user_id = user_id
    remaining = max(0, invite.max_uses - invite.current_uses)
    log_event(
        logger,
        "invite.consumed",
        invite_code_id=invite.id,
        user_id=user_id,
        current_uses=invite.current_uses,
        remaining_uses=remaining,
    )
    return remaining
