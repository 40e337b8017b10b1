"""
Asset catalog API routes.

Reads are open to any signed-in user; writes are admin only.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context, require_admin
from options_desk.common.logging import log_event
from options_desk.crud import apply_updates, get_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import Asset, AssetType
from options_desk.schemas import AssetCreate, AssetOut, AssetTypeCreate, AssetTypeOut, AssetTypeUpdate, AssetUpdate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["assets"])


# --- Asset types ---


def _ensure_type_name_free(db: Session, name: str, *, exclude_id: Optional[int] = None) -> None:
    stmt = select(AssetType.id).where(func.lower(AssetType.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(AssetType.id != exclude_id)
    if db.execute(stmt).first():
        bad_request("DUPLICATE_TYPE_NAME", f"Asset type {name!r} already exists")


@router.get("/asset-types", response_model=list[AssetTypeOut])
def list_asset_types(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return db.execute(select(AssetType).order_by(AssetType.name)).scalars().all()


@router.get("/asset-types/{type_id}", response_model=AssetTypeOut)
def get_asset_type(type_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_or_404(db, AssetType, type_id, "ASSET_TYPE_NOT_FOUND", "Asset type")


@router.post("/asset-types", response_model=AssetTypeOut, status_code=status.HTTP_201_CREATED)
def create_asset_type(
    payload: AssetTypeCreate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    name = payload.name.strip()
    _ensure_type_name_free(db, name)
    asset_type = AssetType(name=name, description=payload.description)
    db.add(asset_type)
    db.commit()
    return asset_type


@router.put("/asset-types/{type_id}", response_model=AssetTypeOut)
def update_asset_type(
    type_id: int,
    payload: AssetTypeUpdate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    asset_type = get_or_404(db, AssetType, type_id, "ASSET_TYPE_NOT_FOUND", "Asset type")
    if payload.name is not None:
        _ensure_type_name_free(db, payload.name.strip(), exclude_id=type_id)
    apply_updates(asset_type, payload)
    db.commit()
    return asset_type


@router.delete("/asset-types/{type_id}")
def delete_asset_type(type_id: int, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    asset_type = get_or_404(db, AssetType, type_id, "ASSET_TYPE_NOT_FOUND", "Asset type")
    db.delete(asset_type)
    db.commit()
    return {"message": "Asset type deleted successfully"}


# --- Assets ---


def _ensure_symbol_free(db: Session, symbol: str, *, exclude_id: Optional[int] = None) -> None:
    stmt = select(Asset.id).where(Asset.symbol == symbol)
    if exclude_id is not None:
        stmt = stmt.where(Asset.id != exclude_id)
    if db.execute(stmt).first():
        bad_request("DUPLICATE_SYMBOL", f"Asset with symbol {symbol} already exists")


def _ensure_type_exists(db: Session, asset_type_id: Optional[int]) -> None:
    if asset_type_id is not None and db.get(AssetType, asset_type_id) is None:
        bad_request("INVALID_ASSET_TYPE", f"Asset type {asset_type_id} does not exist")


@router.get("/assets", response_model=list[AssetOut])
def list_assets(
    asset_type_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    stmt = select(Asset)
    if asset_type_id is not None:
        stmt = stmt.where(Asset.asset_type_id == asset_type_id)
    if is_active is not None:
        stmt = stmt.where(Asset.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(or_(func.lower(Asset.symbol).like(pattern), func.lower(Asset.name).like(pattern)))
    stmt = stmt.order_by(Asset.symbol).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


@router.get("/assets/{asset_id}", response_model=AssetOut)
def get_asset(asset_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    return get_or_404(db, Asset, asset_id, "ASSET_NOT_FOUND", "Asset")


@router.post("/assets", response_model=AssetOut, status_code=status.HTTP_201_CREATED)
def create_asset(payload: AssetCreate, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["symbol"] = data["symbol"].strip().upper()
    _ensure_symbol_free(db, data["symbol"])
    _ensure_type_exists(db, payload.asset_type_id)

    asset = Asset(**data)
    db.add(asset)
    db.commit()
    log_event(logger, "asset.created", asset_id=asset.id, symbol=asset.symbol)
    return asset


@router.put("/assets/{asset_id}", response_model=AssetOut)
def update_asset(
    asset_id: int,
    payload: AssetUpdate,
    admin: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    asset = get_or_404(db, Asset, asset_id, "ASSET_NOT_FOUND", "Asset")
    if payload.symbol is not None:
        payload.symbol = payload.symbol.strip().upper()
        _ensure_symbol_free(db, payload.symbol, exclude_id=asset_id)
    if "asset_type_id" in payload.model_fields_set:
        _ensure_type_exists(db, payload.asset_type_id)
    apply_updates(asset, payload)
    db.commit()
    return asset


@router.delete("/assets/{asset_id}")
def delete_asset(asset_id: int, admin: AuthContext = Depends(require_admin), db: Session = Depends(get_db)):
    asset = get_or_404(db, Asset, asset_id, "ASSET_NOT_FOUND", "Asset")
    db.delete(asset)
    db.commit()
    return {"message": "Asset deleted successfully"}
