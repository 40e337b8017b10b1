"""Small helpers shared by the CRUD routers."""

from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import inspect
from sqlalchemy.orm import Session

from options_desk.auth import AuthContext
from options_desk.errors import not_found

T = TypeVar("T")


def get_or_404(db: Session, model: Type[T], obj_id: Any, code: str, label: str) -> T:
    obj = db.get(model, obj_id)
    if obj is None:
        not_found(code, f"{label} not found")
    return obj


def get_owned_or_404(db: Session, model: Type[T], obj_id: Any, auth: AuthContext, code: str, label: str) -> T:
    """Rows owned by someone else are reported exactly like missing rows."""
    obj = db.get(model, obj_id)
    if obj is None or getattr(obj, "user_id", None) != auth.user_id:
        not_found(code, f"{label} not found")
    return obj


def update_values(obj: Any, payload: BaseModel, *, exclude: set[str] | None = None) -> dict[str, Any]:
    """
    Explicitly-sent fields of `payload`.

    A JSON null aimed at a NOT NULL column means "leave as is" and is dropped.
    """
    columns = inspect(type(obj)).columns
    values: dict[str, Any] = {}
    for key, value in payload.model_dump(exclude_unset=True, exclude=exclude).items():
        column = columns.get(key)
        if value is None and column is not None and not column.nullable:
            continue
        values[key] = value
    return values


def apply_updates(obj: Any, payload: BaseModel, *, exclude: set[str] | None = None) -> dict[str, Any]:
    """Copy `update_values` onto `obj`; returns what changed."""
    changes = update_values(obj, payload, exclude=exclude)
    for key, value in changes.items():
        setattr(obj, key, value)
    return changes
