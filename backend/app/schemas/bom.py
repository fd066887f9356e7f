"""
Bill of Materials Pydantic Schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class BOMEntryCreate(BaseModel):
    project_id: int = Field(..., gt=0)
    material_id: int = Field(..., gt=0)
    planned_qty: Decimal = Field(..., gt=0)
    phase: Optional[str] = Field(None, max_length=50, description="foundation, utilities, interior, ...")
    notes: Optional[str] = None


class BOMEntryUpdate(BaseModel):
    planned_qty: Optional[Decimal] = Field(None, gt=0)
    phase: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class BOMImportItem(BaseModel):
    # No bounds here: bad lines are reported as warnings, not rejected up front
    material_id: int
    planned_qty: Decimal
    phase: Optional[str] = None
    notes: Optional[str] = None


class BOMImportRequest(BaseModel):
    project_id: int = Field(..., gt=0)
    items: List[BOMImportItem] = Field(..., min_length=1)


class BOMEntryResponse(BaseModel):
    id: int
    project_id: int
    material_id: int
    planned_qty: Decimal
    used_qty: Decimal
    remaining_qty: Decimal
    estimated_cost: Decimal
    actual_cost: Decimal
    usage_percentage: Decimal
    phase: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BOMImportResponse(BaseModel):
    created: List[BOMEntryResponse]
    warnings: List[str]


class BOMSummaryResponse(BaseModel):
    """Result of a recalculation"""
    project_id: int
    total_items: int
    total_estimated: Decimal
    total_actual: Decimal
    variance: Decimal
    variance_percentage: Optional[Decimal] = None
    avg_usage_percentage: Decimal
    entries: List[BOMEntryResponse]
