"""
Shared helpers for the ledger and workflow services
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from app.db.base import Lifecycle
from app.exceptions import InvalidInputError, NotFoundError

T = TypeVar("T")

CENT = Decimal("0.01")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Coerce an input number to Decimal, rejecting garbage as InvalidInput."""
    if value is None:
        raise InvalidInputError(f"{field} is required", field=field)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field} must be a number", field=field)


def money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(value: Any, field: str) -> Decimal:
    amount = to_decimal(value, field)
    if amount <= 0:
        raise InvalidInputError(f"{field} must be greater than zero", field=field)
    return amount


def get_active(db: Session, model: Type[T], id: int, lock: bool = False) -> Optional[T]:
    """Fetch an active row by primary key, optionally with a row lock."""
    query = db.query(model).filter(model.id == id, model.lifecycle == Lifecycle.ACTIVE)
    if lock:
        query = query.with_for_update()
    return query.first()


def get_active_or_404(db: Session, model: Type[T], id: int, resource: str, lock: bool = False) -> T:
    obj = get_active(db, model, id, lock=lock)
    if obj is None:
        raise NotFoundError(resource, id)
    return obj
