import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.crud import get_owned_or_404
from options_desk.db import get_db
from options_desk.models import Alert, Position
from options_desk.schemas import AlertCreate, AlertOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _owned_alert(db: Session, alert_id: int, auth: AuthContext) -> Alert:
    return get_owned_or_404(db, Alert, alert_id, auth, "ALERT_NOT_FOUND", "Alert")


@router.get("", response_model=list[AlertOut])
def list_alerts(
    unread_only: bool = False,
    include_dismissed: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Alert).where(Alert.user_id == auth.user_id)
    if unread_only:
        stmt = stmt.where(Alert.is_read.is_(False))
    if not include_dismissed:
        stmt = stmt.where(Alert.is_dismissed.is_(False))
    stmt = stmt.order_by(Alert.triggered_at.desc(), Alert.id.desc()).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/unread-count")
def unread_count(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    count = db.execute(
        select(func.count(Alert.id)).where(
            Alert.user_id == auth.user_id,
            Alert.is_read.is_(False),
            Alert.is_dismissed.is_(False),
        )
    ).scalar_one()
    return {"unread": int(count)}


@router.post("", response_model=AlertOut, status_code=status.HTTP_201_CREATED)
def create_alert(payload: AlertCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    if payload.position_id is not None:
        get_owned_or_404(db, Position, payload.position_id, auth, "POSITION_NOT_FOUND", "Position")
    alert = Alert(user_id=auth.user_id, **payload.model_dump())
    db.add(alert)
    db.commit()
    log_event(
        logger,
        "alert.triggered",
        severity="WARNING" if alert.severity == "critical" else "INFO",
        user_id=auth.user_id,
        alert_id=alert.id,
        alert_type=alert.alert_type,
    )
    return alert


@router.post("/{alert_id}/read", response_model=AlertOut)
def mark_read(alert_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    alert = _owned_alert(db, alert_id, auth)
    alert.is_read = True
    db.commit()
    return alert


@router.post("/{alert_id}/dismiss", response_model=AlertOut)
def dismiss(alert_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    alert = _owned_alert(db, alert_id, auth)
    alert.is_dismissed = True
    alert.is_read = True
    db.commit()
    return alert


@router.delete("/{alert_id}")
def delete_alert(alert_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    alert = _owned_alert(db, alert_id, auth)
    db.delete(alert)
    db.commit()
    return {"message": "Alert deleted successfully"}
