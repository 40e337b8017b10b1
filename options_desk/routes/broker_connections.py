"""
Broker connection API routes.

Credentials are write-only: responses never carry the secret and only the
last four characters of the key.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.common.logging import log_event
from options_desk.common.timeutils import utc_now
from options_desk.crud import apply_updates, get_owned_or_404
from options_desk.db import get_db
from options_desk.models import BrokerConnection
from options_desk.schemas import BrokerConnectionCreate, BrokerConnectionOut, BrokerConnectionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/broker-connections", tags=["broker-connections"])


def mask_key(key: str) -> str:
    return "****" + key[-4:] if len(key) > 4 else "****"


def to_out(conn: BrokerConnection) -> BrokerConnectionOut:
    return BrokerConnectionOut(
        id=conn.id,
        broker_name=conn.broker_name,
        api_key_masked=mask_key(conn.api_key),
        is_paper=conn.is_paper,
        is_active=conn.is_active,
        last_sync_at=conn.last_sync_at,
        created_at=conn.created_at,
        updated_at=conn.updated_at,
    )


def _owned(db: Session, connection_id: int, auth: AuthContext) -> BrokerConnection:
    return get_owned_or_404(db, BrokerConnection, connection_id, auth, "BROKER_CONNECTION_NOT_FOUND", "Broker connection")


@router.get("", response_model=list[BrokerConnectionOut])
def list_connections(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    rows = db.execute(
        select(BrokerConnection)
        .where(BrokerConnection.user_id == auth.user_id)
        .order_by(BrokerConnection.created_at.desc())
    ).scalars()
    return [to_out(c) for c in rows]


@router.get("/{connection_id}", response_model=BrokerConnectionOut)
def get_connection(connection_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return to_out(_owned(db, connection_id, auth))


@router.post("", response_model=BrokerConnectionOut, status_code=status.HTTP_201_CREATED)
def create_connection(
    payload: BrokerConnectionCreate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    conn = BrokerConnection(user_id=auth.user_id, **payload.model_dump())
    db.add(conn)
    db.commit()
    log_event(
        logger,
        "broker_connection.created",
        user_id=auth.user_id,
        connection_id=conn.id,
        broker=conn.broker_name,
        is_paper=conn.is_paper,
    )
    return to_out(conn)


@router.put("/{connection_id}", response_model=BrokerConnectionOut)
def update_connection(
    connection_id: int,
    payload: BrokerConnectionUpdate,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    conn = _owned(db, connection_id, auth)
    apply_updates(conn, payload)
    db.commit()
    return to_out(conn)


@router.post("/{connection_id}/sync", response_model=BrokerConnectionOut)
def mark_synced(connection_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    conn = _owned(db, connection_id, auth)
    conn.last_sync_at = utc_now()
    db.commit()
    return to_out(conn)


@router.delete("/{connection_id}")
def delete_connection(connection_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    conn = _owned(db, connection_id, auth)
    db.delete(conn)
    db.commit()
    return {"message": "Broker connection deleted successfully"}
