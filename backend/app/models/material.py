"""
Material ledger models

Material holds the live stock figure. It only moves through the inventory
ledger: usage events (deduct/return) and manual stock adjustments, both of
which leave an immutable record behind.
"""
import enum
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Text, CheckConstraint, Index
)
from sqlalchemy.orm import relationship

from app.db.base import Base, enum_column, lifecycle_column, utcnow


class MaterialCategory(str, enum.Enum):
    STRUCTURAL = "Structural"
    ELECTRICAL = "Electrical"
    PLUMBING = "Plumbing"
    FINISHING = "Finishing"
    OTHER = "Other"


class Material(Base):
    """
    Construction material with current stock

    Invariant: stock >= 0 (also enforced by a CHECK constraint).
    """
    __tablename__ = "materials"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_material_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Identification
    code = Column(String(50), unique=True, nullable=False, index=True)  # SKU
    name = Column(String(200), nullable=False, index=True)
    category = enum_column(MaterialCategory, nullable=False, default=MaterialCategory.OTHER)
    unit = Column(String(20), nullable=False)  # kg, m3, pcs, ...

    # Pricing
    unit_price = Column(Numeric(15, 2), nullable=False)

    # Stock
    stock = Column(Numeric(15, 2), default=0, nullable=False)
    min_stock = Column(Numeric(15, 2), default=0, nullable=False)

    supplier = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)

    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Material {self.code}: {self.name} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        """At or below the minimum threshold"""
        return Decimal(self.stock or 0) <= Decimal(self.min_stock or 0)


class MaterialUsage(Base):
    """
    Material consumed on a project

    Cost is booked at quantity x unit price when recorded. Later quantity
    changes add their difference at the price of the day, so cost is
    always what was booked against the BOM entry.
    """
    __tablename__ = "material_usages"
    __table_args__ = (
        Index("ix_usage_project_material", "project_id", "material_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)
    # BOM entry the quantity and cost were booked against, if any
    bom_entry_id = Column(Integer, ForeignKey("boms.id"), nullable=True, index=True)

    quantity = Column(Numeric(15, 2), nullable=False)
    cost = Column(Numeric(15, 2), nullable=False)
    usage_date = Column(DateTime, nullable=False, index=True)
    used_by = Column(Integer, nullable=False)  # Caller ID from the auth gate
    notes = Column(Text, nullable=True)

    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project")
    material = relationship("Material")

    def __repr__(self):
        return f"<MaterialUsage {self.id}: project={self.project_id} material={self.material_id} qty={self.quantity}>"


class StockAdjustment(Base):
    """Manual stock correction, kept for the audit trail"""
    __tablename__ = "stock_adjustments"

    id = Column(Integer, primary_key=True, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)

    delta = Column(Numeric(15, 2), nullable=False)  # Positive for increase, negative for decrease
    resulting_stock = Column(Numeric(15, 2), nullable=False)
    reason = Column(Text, nullable=True)
    adjusted_by = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    material = relationship("Material")
