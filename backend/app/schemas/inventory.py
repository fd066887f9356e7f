"""
Material and Material Usage Pydantic Schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from app.models.material import MaterialCategory


# ============================================================================
# Material Schemas
# ============================================================================

class MaterialBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="Unique material code (SKU)")
    name: str = Field(..., min_length=1, max_length=200)
    category: MaterialCategory = MaterialCategory.OTHER
    unit: str = Field(..., min_length=1, max_length=20, description="kg, m3, pcs, ...")
    unit_price: Decimal = Field(..., ge=0)
    min_stock: Decimal = Field(Decimal("0"), ge=0)
    supplier: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None


class MaterialCreate(MaterialBase):
    stock: Decimal = Field(Decimal("0"), ge=0, description="Opening stock")


class MaterialUpdate(BaseModel):
    """Catalogue fields only; stock moves through adjustments and usage"""
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[MaterialCategory] = None
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    min_stock: Optional[Decimal] = Field(None, ge=0)
    supplier: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None


class MaterialResponse(MaterialBase):
    id: int
    stock: Decimal
    is_low_stock: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StockAdjustmentRequest(BaseModel):
    adjustment: Decimal = Field(..., description="Signed quantity; negative removes stock")
    reason: Optional[str] = Field(None, max_length=500)


class StockAdjustmentResponse(BaseModel):
    id: int
    material_id: int
    delta: Decimal
    resulting_stock: Decimal
    reason: Optional[str] = None
    adjusted_by: int
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Material Usage Schemas
# ============================================================================

class MaterialUsageCreate(BaseModel):
    project_id: int = Field(..., gt=0)
    material_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    usage_date: Optional[date] = Field(None, description="Defaults to today")
    notes: Optional[str] = None


class MaterialUsageUpdate(BaseModel):
    quantity: Optional[Decimal] = Field(None, gt=0)
    usage_date: Optional[date] = None
    notes: Optional[str] = None


class MaterialUsageResponse(BaseModel):
    id: int
    project_id: int
    material_id: int
    bom_entry_id: Optional[int] = None
    quantity: Decimal
    cost: Decimal
    usage_date: datetime
    used_by: int
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MaterialUsageStats(BaseModel):
    project_id: int
    total_records: int
    unique_materials: int
    total_cost: Decimal
