"""
Invite code API routes.

POST /api/invite-codes/validate - Check a code without using it (public)
POST /api/invite-codes/consume  - Count one use of a code
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.invites import check_invite_code, consume_invite
from options_desk.schemas import InviteCodeRequest

router = APIRouter(prefix="/invite-codes", tags=["invite-codes"])


@router.post("/validate")
def validate_invite_code(payload: InviteCodeRequest, db: Session = Depends(get_db)):
    check = check_invite_code(db, payload.code)
    if not check.valid:
        return JSONResponse(status_code=400, content=check.to_dict())
    return check.to_dict()


@router.post("/consume")
def consume_invite_code(
    payload: InviteCodeRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    check = check_invite_code(db, payload.code, for_update=True)
    if not check.valid:
        bad_request(check.reason, check.message)

    remaining = consume_invite(check.invite, user_id=auth.user_id)
    db.commit()
    return {
        "success": True,
        "invite_code": check.invite.code,
        "remaining_uses": remaining,
        "message": "Invite code consumed successfully",
    }
