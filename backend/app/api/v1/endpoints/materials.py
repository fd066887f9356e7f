"""
Materials API Endpoints

Material catalogue and manual stock corrections. Stock changes from site
usage go through /material-usage.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_orchestrator
from app.api.v1.endpoints.auth import get_current_caller
from app.core.security import Caller
from app.db.session import get_db
from app.models.material import MaterialCategory
from app.schemas.inventory import (
    MaterialCreate,
    MaterialResponse,
    MaterialUpdate,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
)
from app.services import inventory_ledger
from app.services.orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.get("", response_model=List[MaterialResponse])
async def list_materials(
    category: Optional[MaterialCategory] = Query(None),
    search: Optional[str] = Query(None, description="Match on name or code"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return inventory_ledger.list_materials(db, category=category, search=search)


@router.get("/low-stock", response_model=List[MaterialResponse])
async def list_low_stock(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """Materials at or below their minimum stock"""
    return inventory_ledger.list_low_stock(db)


@router.get("/{material_id}", response_model=MaterialResponse)
async def get_material(
    material_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return inventory_ledger.get_material(db, material_id)


@router.post("", response_model=MaterialResponse, status_code=201)
async def create_material(
    request: MaterialCreate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.create_material(caller, **request.model_dump())


@router.patch("/{material_id}", response_model=MaterialResponse)
async def update_material(
    material_id: int,
    request: MaterialUpdate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.update_material(caller, material_id, **request.model_dump(exclude_unset=True))


@router.post("/{material_id}/adjust-stock", response_model=StockAdjustmentResponse)
async def adjust_stock(
    material_id: int,
    request: StockAdjustmentRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Manual stock correction; positive adds stock, negative removes it"""
    return orchestrator.adjust_material_stock(caller, material_id, request.adjustment, reason=request.reason)
