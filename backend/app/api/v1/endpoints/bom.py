"""
BOM API Endpoints

Per-project material plan, variance recalculation and bulk import.
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_orchestrator
from app.api.v1.endpoints.auth import get_current_caller
from app.core.security import Caller
from app.db.session import get_db
from app.schemas.bom import (
    BOMEntryCreate,
    BOMEntryResponse,
    BOMEntryUpdate,
    BOMImportRequest,
    BOMImportResponse,
    BOMSummaryResponse,
)
from app.services import bom_tracker
from app.services.orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.get("/project/{project_id}", response_model=List[BOMEntryResponse])
async def list_project_bom(
    project_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return bom_tracker.list_entries(db, project_id)


@router.post("", response_model=BOMEntryResponse, status_code=201)
async def add_entry(
    request: BOMEntryCreate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.add_bom_entry(
        caller,
        project_id=request.project_id,
        material_id=request.material_id,
        planned_qty=request.planned_qty,
        phase=request.phase,
        notes=request.notes,
    )


@router.post("/import", response_model=BOMImportResponse, status_code=201)
async def import_batch(
    request: BOMImportRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """
    Import several entries at once

    Lines that fail (unknown material, duplicate entry) come back as
    warnings. If every line fails nothing is saved and the call returns 400.
    """
    return orchestrator.import_bom_batch(
        caller, request.project_id, [item.model_dump() for item in request.items],
    )


@router.post("/project/{project_id}/recalculate", response_model=BOMSummaryResponse)
async def recalculate(
    project_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Re-derive used quantities and costs from recorded usage and report variance"""
    return orchestrator.recalculate_bom(caller, project_id)


@router.patch("/{entry_id}", response_model=BOMEntryResponse)
async def update_entry(
    entry_id: int,
    request: BOMEntryUpdate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.update_bom_entry(
        caller, entry_id, planned_qty=request.planned_qty, phase=request.phase, notes=request.notes,
    )


@router.delete("/{entry_id}")
async def remove_entry(
    entry_id: int,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Remove a planned material; refused once usage has been booked against it"""
    entry = orchestrator.remove_bom_entry(caller, entry_id)
    return {"message": "BOM entry removed", "id": entry.id}
