"""
Declarative base shared by all models
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Enum as SAEnum
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Lifecycle(str, enum.Enum):
    """Record lifecycle. Archived rows are kept but excluded from every read path."""
    ACTIVE = "active"
    ARCHIVED = "archived"


def lifecycle_column():
    return Column(
        SAEnum(Lifecycle, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=Lifecycle.ACTIVE,
        nullable=False,
        index=True,
    )


def enum_column(enum_cls, length: int = 30, **kwargs):
    """String-backed enum column storing the member values."""
    return Column(
        SAEnum(enum_cls, native_enum=False, length=length, values_callable=lambda e: [m.value for m in e]),
        **kwargs,
    )
