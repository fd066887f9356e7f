"""
Material Usage API Endpoints

Recording usage deducts stock and books quantity and cost against the
project's BOM entry for that material.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_orchestrator
from app.api.v1.endpoints.auth import get_current_caller
from app.core.security import Caller
from app.db.session import get_db
from app.schemas.inventory import (
    MaterialUsageCreate,
    MaterialUsageResponse,
    MaterialUsageStats,
    MaterialUsageUpdate,
)
from app.services import inventory_ledger
from app.services.orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.post("", response_model=MaterialUsageResponse, status_code=201)
async def record_usage(
    request: MaterialUsageCreate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.record_material_usage(
        caller,
        project_id=request.project_id,
        material_id=request.material_id,
        quantity=request.quantity,
        usage_date=request.usage_date,
        notes=request.notes,
    )


@router.get("/project/{project_id}", response_model=List[MaterialUsageResponse])
async def list_project_usage(
    project_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return inventory_ledger.list_usage_by_project(db, project_id)


@router.get("/project/{project_id}/stats", response_model=MaterialUsageStats)
async def project_usage_stats(
    project_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    stats = inventory_ledger.usage_stats(db, project_id)
    return MaterialUsageStats(project_id=project_id, **stats)


@router.get("/{usage_id}", response_model=MaterialUsageResponse)
async def get_usage(
    usage_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return inventory_ledger.get_usage(db, usage_id)


@router.patch("/{usage_id}", response_model=MaterialUsageResponse)
async def update_usage(
    usage_id: int,
    request: MaterialUsageUpdate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Only the change in quantity is applied to stock and the BOM"""
    return orchestrator.update_material_usage(
        caller, usage_id, quantity=request.quantity, usage_date=request.usage_date, notes=request.notes,
    )


@router.delete("/{usage_id}")
async def delete_usage(
    usage_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Remove a usage record and return its quantity to stock"""
    usage = orchestrator.delete_material_usage(caller, usage_id)
    return {"message": "Material usage deleted", "id": usage.id}
