"""
Purchase Requests API Endpoints

Create, approve, reject and discuss purchase requests. Approvals run
Purchasing -> Cost Control -> GM; each stage is restricted to its role.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_orchestrator
from app.api.v1.endpoints.auth import get_current_caller
from app.core.security import Caller
from app.db.session import get_db
from app.schemas.purchase_request import (
    ApproveRequest,
    CommentCreate,
    PRCommentResponse,
    PRItemResponse,
    PRItemUpdate,
    PRListFilter,
    PurchaseRequestCreate,
    PurchaseRequestListResponse,
    PurchaseRequestResponse,
    RejectRequest,
)
from app.services import purchase_request_workflow
from app.services.orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.get("", response_model=List[PurchaseRequestListResponse])
async def list_purchase_requests(
    filter: PRListFilter = Query("all"),
    project_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    """
    List purchase requests, newest first

    - **my_requests**: raised by the caller
    - **pending_approval**: pending at a stage the caller's role decides
    - **approved** / **rejected**: finished requests
    """
    return purchase_request_workflow.list_purchase_requests(
        db, caller.id, caller.role, filter=filter, project_id=project_id,
    )


@router.post("", response_model=PurchaseRequestResponse, status_code=201)
async def create_purchase_request(
    request: PurchaseRequestCreate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Raise a purchase request; it starts at the Purchasing stage"""
    return orchestrator.create_pr(
        caller,
        project_id=request.project_id,
        title=request.title,
        items=[item.model_dump() for item in request.items],
        total_amount=request.total_amount,
        priority=request.priority,
        required_date=request.required_date,
        description=request.description,
    )


@router.get("/{pr_id}", response_model=PurchaseRequestResponse)
async def get_purchase_request(
    pr_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return purchase_request_workflow.get_purchase_request(db, pr_id)


@router.post("/{pr_id}/approve", response_model=PurchaseRequestResponse)
async def approve_purchase_request(
    pr_id: int,
    request: ApproveRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Approve the stage the request is waiting on"""
    return orchestrator.approve_pr(caller, pr_id, request.stage, comment=request.comment)


@router.post("/{pr_id}/reject", response_model=PurchaseRequestResponse)
async def reject_purchase_request(
    pr_id: int,
    request: RejectRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Reject the request at its current stage. A reason is required."""
    return orchestrator.reject_pr(caller, pr_id, request.stage, reason=request.reason)


@router.get("/{pr_id}/comments", response_model=List[PRCommentResponse])
async def list_comments(
    pr_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return purchase_request_workflow.get_purchase_request(db, pr_id).comments


@router.post("/{pr_id}/comments", response_model=PRCommentResponse, status_code=201)
async def add_comment(
    pr_id: int,
    request: CommentCreate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    return orchestrator.comment_pr(caller, pr_id, request.comment)


@router.patch("/{pr_id}/items/{item_id}", response_model=PRItemResponse)
async def update_item(
    pr_id: int,
    item_id: int,
    request: PRItemUpdate,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
    caller: Caller = Depends(get_current_caller),
):
    """Requester-only edit of a line while the request is still pending"""
    return orchestrator.update_pr_item(
        caller, pr_id, item_id, quantity=request.quantity, estimated_price=request.estimated_price,
    )
