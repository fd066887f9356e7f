"""
Bill of Materials models
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, lifecycle_column, utcnow


class BOMEntry(Base):
    """
    Planned material requirement for one project - matches boms table

    remaining_qty = planned_qty - used_qty and is allowed to go negative
    when a project over-uses a material.
    """
    __tablename__ = "boms"
    __table_args__ = (
        UniqueConstraint("project_id", "material_id", name="uq_bom_project_material"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # References
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)

    # Quantities
    planned_qty = Column(Numeric(15, 2), nullable=False)
    used_qty = Column(Numeric(15, 2), default=0, nullable=False)
    remaining_qty = Column(Numeric(15, 2), nullable=False)

    # Costs
    estimated_cost = Column(Numeric(15, 2), nullable=False)  # planned_qty * unit price snapshot
    actual_cost = Column(Numeric(15, 2), default=0, nullable=False)

    # Construction phase (foundation, utilities, interior, equipment)
    phase = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    project = relationship("Project")
    material = relationship("Material")

    def __repr__(self):
        return f"<BOMEntry project={self.project_id} material={self.material_id} planned={self.planned_qty}>"

    def update_remaining_qty(self) -> None:
        self.remaining_qty = Decimal(self.planned_qty or 0) - Decimal(self.used_qty or 0)

    @property
    def usage_percentage(self) -> Decimal:
        planned = Decimal(self.planned_qty or 0)
        if planned == 0:
            return Decimal("0")
        return Decimal(self.used_qty or 0) / planned * 100
