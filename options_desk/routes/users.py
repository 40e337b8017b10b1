import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.crud import apply_updates
from options_desk.db import get_db
from options_desk.schemas import UserOut, UserUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserOut)
def get_profile(auth: AuthContext = Depends(get_auth_context)):
    return auth.user


@router.put("/me", response_model=UserOut)
def update_profile(
    payload: UserUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Update trading preferences (risk tolerance, execution mode, balance)."""
    changes = apply_updates(auth.user, payload)
    db.commit()
    log_event(logger, "user.updated", user_id=auth.user_id, fields=sorted(changes))
    return auth.user
