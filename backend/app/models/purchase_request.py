"""
Purchase Request models

A PR moves through a fixed sequence of approval stages:

    Purchasing -> Cost Control -> GM

Every stage gets an ApprovalStageRecord when the PR is created. The PR's
current_stage always names the stage whose record is still pending while
the PR itself is pending.
"""
import enum
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Date, ForeignKey, Text, UniqueConstraint, event
)
from sqlalchemy.orm import relationship

from app.db.base import Base, enum_column, lifecycle_column, utcnow


class PRStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PRPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class StageStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalStage(str, enum.Enum):
    """Approval checkpoints, declared in workflow order."""
    PURCHASING = "Purchasing"
    COST_CONTROL = "Cost Control"
    GM = "GM"

    @classmethod
    def sequence(cls) -> Tuple["ApprovalStage", ...]:
        return tuple(cls)

    @classmethod
    def first(cls) -> "ApprovalStage":
        return cls.sequence()[0]

    @property
    def position(self) -> int:
        return self.sequence().index(self)

    def next_stage(self) -> Optional["ApprovalStage"]:
        """The stage after this one, or None for the final stage."""
        stages = self.sequence()
        idx = stages.index(self)
        return stages[idx + 1] if idx + 1 < len(stages) else None

    @classmethod
    def parse(cls, value) -> Optional["ApprovalStage"]:
        if isinstance(value, cls):
            return value
        for stage in cls:
            if stage.value == value:
                return stage
        return None


class PurchaseRequest(Base):
    """Purchase request with multi-stage approval"""
    __tablename__ = "purchase_requests"

    id = Column(Integer, primary_key=True, index=True)
    pr_number = Column(String(30), unique=True, nullable=False, index=True)  # PR-2025-0001

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    requester_id = Column(Integer, nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = enum_column(PRPriority, length=20, default=PRPriority.NORMAL, nullable=False)
    status = enum_column(PRStatus, length=20, default=PRStatus.PENDING, nullable=False, index=True)
    total_amount = Column(Numeric(15, 2), nullable=False)
    required_date = Column(Date, nullable=True)
    current_stage = enum_column(ApprovalStage, length=50, default=ApprovalStage.PURCHASING, nullable=False, index=True)

    lifecycle = lifecycle_column()

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships (owned, cascade)
    project = relationship("Project")
    items = relationship(
        "PRItem", back_populates="purchase_request",
        cascade="all, delete-orphan", order_by="PRItem.id",
    )
    stage_records = relationship(
        "ApprovalStageRecord", back_populates="purchase_request",
        cascade="all, delete-orphan", order_by="ApprovalStageRecord.position",
    )
    comments = relationship(
        "PRComment", back_populates="purchase_request",
        cascade="all, delete-orphan", order_by="PRComment.id",
    )

    def __repr__(self):
        return f"<PurchaseRequest {self.pr_number} {self.status.value if self.status else '?'} @ {self.current_stage}>"

    @property
    def is_fully_approved(self) -> bool:
        return self.status == PRStatus.APPROVED and self.current_stage == ApprovalStage.sequence()[-1]

    def stage_record(self, stage: ApprovalStage) -> Optional["ApprovalStageRecord"]:
        for record in self.stage_records:
            if record.stage == stage:
                return record
        return None


class PRItem(Base):
    """Line item on a purchase request"""
    __tablename__ = "pr_items"

    id = Column(Integer, primary_key=True, index=True)
    purchase_request_id = Column(Integer, ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("materials.id"), nullable=False, index=True)

    quantity = Column(Numeric(15, 2), nullable=False)
    unit = Column(String(20), nullable=False)
    estimated_price = Column(Numeric(15, 2), nullable=False)
    total_price = Column(Numeric(15, 2), nullable=False)  # quantity * estimated_price
    vendor = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    purchase_request = relationship("PurchaseRequest", back_populates="items")
    material = relationship("Material")

    def recompute_total(self) -> None:
        self.total_price = (Decimal(self.quantity or 0) * Decimal(self.estimated_price or 0)).quantize(Decimal("0.01"))


@event.listens_for(PRItem, "before_insert")
@event.listens_for(PRItem, "before_update")
def _pr_item_total(mapper, connection, target: PRItem) -> None:
    target.recompute_total()


class ApprovalStageRecord(Base):
    """Outcome of one approval stage; immutable once approved or rejected"""
    __tablename__ = "approval_stage_records"
    __table_args__ = (
        UniqueConstraint("purchase_request_id", "stage", name="uq_pr_stage"),
    )

    id = Column(Integer, primary_key=True, index=True)
    purchase_request_id = Column(Integer, ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = enum_column(ApprovalStage, length=50, nullable=False)
    position = Column(Integer, nullable=False)  # Order within the stage sequence
    status = enum_column(StageStatus, length=20, default=StageStatus.PENDING, nullable=False)
    approver_id = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)
    decided_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    purchase_request = relationship("PurchaseRequest", back_populates="stage_records")

    @property
    def is_final(self) -> bool:
        return self.status != StageStatus.PENDING


class PRComment(Base):
    """Discussion comment on a purchase request"""
    __tablename__ = "pr_comments"

    id = Column(Integer, primary_key=True, index=True)
    purchase_request_id = Column(Integer, ForeignKey("purchase_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    purchase_request = relationship("PurchaseRequest", back_populates="comments")


class PRNumberSequence(Base):
    """Per-year PR counter row, incremented under a row lock"""
    __tablename__ = "pr_number_sequences"

    year = Column(Integer, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
