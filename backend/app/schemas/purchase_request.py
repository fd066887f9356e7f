"""
Purchase Request Pydantic Schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.models.purchase_request import ApprovalStage, PRPriority, PRStatus, StageStatus


# ============================================================================
# Requests
# ============================================================================

class PRItemCreate(BaseModel):
    """Line item on a new purchase request"""
    material_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0, description="Quantity to purchase")
    unit: Optional[str] = Field(None, max_length=20, description="Defaults to the material's unit")
    estimated_price: Optional[Decimal] = Field(None, ge=0, description="Defaults to the material's unit price")
    vendor: Optional[str] = Field(None, max_length=200)
    notes: Optional[str] = None


class PurchaseRequestCreate(BaseModel):
    project_id: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: PRPriority = PRPriority.NORMAL
    required_date: Optional[date] = None
    total_amount: Optional[Decimal] = Field(None, ge=0, description="Defaults to the sum of item totals")
    items: List[PRItemCreate] = Field(..., min_length=1)


class PRItemUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, gt=0)
    estimated_price: Optional[Decimal] = Field(None, ge=0)


class ApproveRequest(BaseModel):
    stage: ApprovalStage
    comment: Optional[str] = None


class RejectRequest(BaseModel):
    stage: ApprovalStage
    reason: str = Field(..., min_length=1, description="Why the request was rejected")


class CommentCreate(BaseModel):
    comment: str = Field(..., min_length=1)


PRListFilter = Literal["all", "my_requests", "pending_approval", "approved", "rejected"]


# ============================================================================
# Responses
# ============================================================================

class PRItemResponse(BaseModel):
    id: int
    material_id: int
    quantity: Decimal
    unit: str
    estimated_price: Decimal
    total_price: Decimal
    vendor: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class StageRecordResponse(BaseModel):
    stage: ApprovalStage
    position: int
    status: StageStatus
    approver_id: Optional[int] = None
    comment: Optional[str] = None
    decided_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PRCommentResponse(BaseModel):
    id: int
    purchase_request_id: int
    user_id: int
    comment: str
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseRequestListResponse(BaseModel):
    """Summary row for list views"""
    id: int
    pr_number: str
    project_id: int
    requester_id: int
    title: str
    priority: PRPriority
    status: PRStatus
    current_stage: ApprovalStage
    total_amount: Decimal
    required_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseRequestResponse(PurchaseRequestListResponse):
    """Full purchase request with items, approval trail and comments"""
    description: Optional[str] = None
    updated_at: datetime
    items: List[PRItemResponse] = []
    stage_records: List[StageRecordResponse] = []
    comments: List[PRCommentResponse] = []
