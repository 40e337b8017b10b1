from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext, get_auth_context
from options_desk.crud import get_or_404, get_owned_or_404
from options_desk.db import get_db
from options_desk.errors import bad_request
from options_desk.models import Asset, WatchlistItem
from options_desk.schemas import WatchlistAdd, WatchlistItemOut

router = APIRouter(prefix="/watchlist", tags=["watchlist"])


def to_out(item: WatchlistItem, asset: Asset) -> WatchlistItemOut:
    return WatchlistItemOut(
        id=item.id,
        asset_id=asset.id,
        symbol=asset.symbol,
        name=asset.name,
        current_price=asset.current_price,
        notes=item.notes,
        added_at=item.added_at,
    )


@router.get("", response_model=list[WatchlistItemOut])
def list_watchlist(auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    rows = db.execute(
        select(WatchlistItem, Asset)
        .join(Asset, WatchlistItem.asset_id == Asset.id)
        .where(WatchlistItem.user_id == auth.user_id)
        .order_by(WatchlistItem.added_at.desc(), WatchlistItem.id.desc())
    ).all()
    return [to_out(item, asset) for item, asset in rows]


@router.post("", response_model=WatchlistItemOut, status_code=status.HTTP_201_CREATED)
def add_to_watchlist(payload: WatchlistAdd, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    asset = get_or_404(db, Asset, payload.asset_id, "ASSET_NOT_FOUND", "Asset")
    duplicate = db.execute(
        select(WatchlistItem.id).where(WatchlistItem.user_id == auth.user_id, WatchlistItem.asset_id == asset.id)
    ).first()
    if duplicate:
        bad_request("DUPLICATE_WATCHLIST_ITEM", f"{asset.symbol} is already on the watchlist")

    item = WatchlistItem(user_id=auth.user_id, asset_id=asset.id, notes=payload.notes)
    db.add(item)
    db.commit()
    return to_out(item, asset)


@router.delete("/{item_id}")
def remove_from_watchlist(item_id: int, auth: AuthContext = Depends(get_auth_context), db: Session = Depends(get_db)):
    item = get_owned_or_404(db, WatchlistItem, item_id, auth, "WATCHLIST_ITEM_NOT_FOUND", "Watchlist item")
    db.delete(item)
    db.commit()
    return {"message": "Removed from watchlist"}
