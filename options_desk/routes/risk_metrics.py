from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.db import get_db
from options_desk.errors import not_found
from options_desk.models import RiskMetric
from options_desk.schemas import RiskMetricCreate, RiskMetricOut

router = APIRouter(prefix="/risk-metrics", tags=["risk-metrics"])


def _newest_first(user_id: str):
    return (
        select(RiskMetric)
        .where(RiskMetric.user_id == user_id)
        .order_by(RiskMetric.calculated_at.desc(), RiskMetric.id.desc())
    )


@router.post("", response_model=RiskMetricOut, status_code=status.HTTP_201_CREATED)
def record_snapshot(payload: RiskMetricCreate, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    metric = RiskMetric(user_id=auth.user_id, **payload.model_dump())
    db.add(metric)
    db.commit()
    return metric


@router.get("", response_model=list[RiskMetricOut])
def list_snapshots(
    limit: int = Query(default=30, ge=1, le=365),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return db.execute(_newest_first(auth.user_id).limit(limit)).scalars().all()


@router.get("/latest", response_model=RiskMetricOut)
def latest_snapshot(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    metric = db.execute(_newest_first(auth.user_id).limit(1)).scalars().first()
    if metric is None:
        not_found("RISK_METRICS_NOT_FOUND", "No risk metrics recorded yet")
    return metric
