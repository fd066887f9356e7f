"""
Purchase Request Workflow

State machine for purchase requests:

    Purchasing -> Cost Control -> GM -> approved
         |              |          |
         +--------------+----------+--> rejected

Only the role mapped to a stage may act on it, and only while that stage
is the PR's current stage. The PR row is read FOR UPDATE, so of two
concurrent approvers the second finds the stage already decided and gets
a ConflictError.

Like the other ledger services, nothing here commits.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import extract
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.db.base import Lifecycle, utcnow
from app.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.logging_config import get_logger
from app.models.material import Material
from app.models.notification import NotificationType
from app.models.project import Project
from app.models.purchase_request import (
    ApprovalStage,
    ApprovalStageRecord,
    PRComment,
    PRItem,
    PRNumberSequence,
    PRPriority,
    PRStatus,
    PurchaseRequest,
    StageStatus,
)
from app.models.user import Role
from app.services import notification_service
from app.services.common import get_active_or_404, money, require_positive, to_decimal

logger = get_logger(__name__)


# ============================================================================
# STAGE AUTHORITY
# ============================================================================

STAGE_ROLES: Dict[ApprovalStage, Role] = {
    ApprovalStage.PURCHASING: Role.PURCHASING,
    ApprovalStage.COST_CONTROL: Role.COST_CONTROL,
    ApprovalStage.GM: Role.GENERAL_MANAGER,
}


class StageAuthority:
    """Which role may decide which approval stage"""

    @staticmethod
    def required_role(stage: ApprovalStage) -> Role:
        return STAGE_ROLES[stage]

    @staticmethod
    def can_act(role: Optional[Role], stage: ApprovalStage) -> bool:
        return role is not None and STAGE_ROLES.get(stage) == role

    @staticmethod
    def stages_for(role: Optional[Role]) -> List[ApprovalStage]:
        return [stage for stage, required in STAGE_ROLES.items() if required == role]


def _resolve_role(role: Union[Role, str, None]) -> Role:
    parsed = Role.parse(role) if role is not None else None
    if parsed is None:
        raise ForbiddenError(f"Unknown role: {role}")
    return parsed


def _resolve_stage(stage: Union[ApprovalStage, str]) -> ApprovalStage:
    parsed = ApprovalStage.parse(stage)
    if parsed is None:
        raise InvalidInputError(f"Unknown approval stage: {stage}", field="stage")
    return parsed


# ============================================================================
# NUMBERING
# ============================================================================

def next_pr_number(db: Session, year: Optional[int] = None) -> str:
    """
    Allocate the next PR number for the year: PR-2025-0001

    The per-year counter row is locked for the increment. The first PR of
    a year seeds the counter from any PRs already on file for that year.
    """
    year = year or utcnow().year

    sequence = _lock_sequence(db, year)
    if sequence is None:
        existing = db.query(PurchaseRequest).filter(
            extract("year", PurchaseRequest.created_at) == year
        ).count()
        ensure_sequence_row(db, year, existing)
        sequence = _lock_sequence(db, year)

    sequence.last_value += 1
    db.flush()

    return f"PR-{year}-{sequence.last_value:04d}"


def ensure_sequence_row(db: Session, year: int, seed: int) -> None:
    """
    Create the counter row for a year unless another transaction already has

    Two creators racing for the first PR of a year both get here; the
    insert is skipped on conflict so the loser waits on the row lock
    instead of failing.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        if db.get(PRNumberSequence, year) is None:
            db.add(PRNumberSequence(year=year, last_value=seed))
            db.flush()
        return

    db.execute(
        insert(PRNumberSequence)
        .values(year=year, last_value=seed, updated_at=utcnow())
        .on_conflict_do_nothing(index_elements=["year"])
    )


def _lock_sequence(db: Session, year: int) -> Optional[PRNumberSequence]:
    return db.query(PRNumberSequence).filter(
        PRNumberSequence.year == year
    ).with_for_update().populate_existing().first()


# ============================================================================
# CREATE
# ============================================================================

def create_purchase_request(
    db: Session,
    requester_id: int,
    project_id: int,
    title: str,
    items: Iterable[Mapping[str, Any]],
    total_amount=None,
    priority: Union[PRPriority, str] = PRPriority.NORMAL,
    required_date: Optional[date] = None,
    description: Optional[str] = None,
) -> PurchaseRequest:
    """
    Create a purchase request at the first approval stage

    Items are mappings with material_id, quantity and estimated_price, plus
    optional unit, vendor and notes. When total_amount is omitted it is the
    sum of the item totals.

    Raises:
        InvalidInputError: no items, bad quantities or prices, blank title
        NotFoundError: project or an item's material missing
    """
    if not (title or "").strip():
        raise InvalidInputError("title is required", field="title")

    items = list(items or [])
    if not items:
        raise InvalidInputError("A purchase request needs at least one item", field="items")

    get_active_or_404(db, Project, project_id, "Project")

    try:
        priority = PRPriority(priority)
    except ValueError:
        raise InvalidInputError(f"Unknown priority: {priority}", field="priority")

    # Validate every line before touching anything
    lines = []
    for index, item in enumerate(items):
        material_id = item.get("material_id")
        material = get_active_or_404(db, Material, material_id, "Material")

        quantity = require_positive(item.get("quantity"), f"items[{index}].quantity")
        estimated_price = item.get("estimated_price")
        estimated_price = material.unit_price if estimated_price is None else to_decimal(
            estimated_price, f"items[{index}].estimated_price"
        )
        if estimated_price < 0:
            raise InvalidInputError(
                "estimated_price cannot be negative", field=f"items[{index}].estimated_price"
            )

        line = PRItem(
            material_id=material.id,
            quantity=quantity,
            unit=item.get("unit") or material.unit,
            estimated_price=estimated_price,
            vendor=item.get("vendor"),
            notes=item.get("notes"),
        )
        line.recompute_total()
        lines.append(line)

    if total_amount is None:
        total_amount = sum((Decimal(line.total_price) for line in lines), Decimal("0"))
    else:
        total_amount = to_decimal(total_amount, "total_amount")
        if total_amount < 0:
            raise InvalidInputError("total_amount cannot be negative", field="total_amount")

    first_stage = ApprovalStage.first()

    pr = PurchaseRequest(
        pr_number=next_pr_number(db),
        project_id=project_id,
        requester_id=requester_id,
        title=title.strip(),
        description=description,
        priority=priority,
        status=PRStatus.PENDING,
        total_amount=money(total_amount),
        required_date=required_date,
        current_stage=first_stage,
    )
    pr.items = lines
    pr.stage_records = [
        ApprovalStageRecord(stage=stage, position=stage.position, status=StageStatus.PENDING)
        for stage in ApprovalStage.sequence()
    ]
    db.add(pr)
    db.flush()

    notification_service.enqueue_for_role(
        db,
        StageAuthority.required_role(first_stage),
        title="New Purchase Request Requires Approval",
        message=f"{pr.pr_number}: {pr.title} is waiting for {first_stage.value} approval",
        type=NotificationType.APPROVAL_REQUEST,
        related_id=pr.id,
    )

    logger.info(
        f"Created purchase request {pr.pr_number}",
        extra={"pr_id": pr.id, "project_id": project_id, "items": len(lines), "total_amount": str(pr.total_amount)},
    )
    return pr


# ============================================================================
# DECISIONS
# ============================================================================

def _load_for_decision(
    db: Session,
    pr_id: int,
    stage: ApprovalStage,
) -> PurchaseRequest:
    pr = get_active_or_404(db, PurchaseRequest, pr_id, "Purchase request", lock=True)

    if pr.status != PRStatus.PENDING:
        raise ConflictError(
            f"Purchase request {pr.pr_number} is already {pr.status.value}",
            {"status": pr.status.value},
        )
    if pr.current_stage != stage:
        raise ConflictError(
            f"Purchase request {pr.pr_number} is at stage {pr.current_stage.value}, not {stage.value}",
            {"current_stage": pr.current_stage.value, "stage": stage.value},
        )

    record = pr.stage_record(stage)
    if record is None or record.is_final:
        raise ConflictError(f"Stage {stage.value} has already been decided")
    return pr


def approve(
    db: Session,
    pr_id: int,
    stage: Union[ApprovalStage, str],
    approver_id: int,
    approver_role: Union[Role, str],
    comment: Optional[str] = None,
) -> PurchaseRequest:
    """
    Approve the current stage and advance

    The final stage approval marks the PR approved and tells the requester;
    any other approval hands the PR to the next stage's role.

    Raises:
        ForbiddenError: role cannot act on the stage (checked first)
        NotFoundError: PR missing
        ConflictError: PR not pending or not at this stage
    """
    role = _resolve_role(approver_role)
    stage = _resolve_stage(stage)
    if not StageAuthority.can_act(role, stage):
        raise ForbiddenError(f"Role {role.value} cannot approve the {stage.value} stage")

    pr = _load_for_decision(db, pr_id, stage)

    record = pr.stage_record(stage)
    record.status = StageStatus.APPROVED
    record.approver_id = approver_id
    record.comment = comment
    record.decided_at = utcnow()

    next_stage = stage.next_stage()
    if next_stage is not None:
        pr.current_stage = next_stage
        notification_service.enqueue_for_role(
            db,
            StageAuthority.required_role(next_stage),
            title="Purchase Request Requires Approval",
            message=f"{pr.pr_number}: {pr.title} passed {stage.value} and is waiting for {next_stage.value} approval",
            type=NotificationType.APPROVAL_REQUEST,
            related_id=pr.id,
        )
    else:
        pr.status = PRStatus.APPROVED
        notification_service.enqueue(
            db,
            pr.requester_id,
            title="Purchase Request Approved",
            message=f"Your purchase request {pr.pr_number} has been fully approved",
            type=NotificationType.APPROVAL_APPROVED,
            related_id=pr.id,
        )

    db.flush()

    logger.info(
        f"{pr.pr_number} approved at {stage.value}",
        extra={"pr_id": pr.id, "approver_id": approver_id, "next_stage": next_stage.value if next_stage else None},
    )
    return pr


def reject(
    db: Session,
    pr_id: int,
    stage: Union[ApprovalStage, str],
    approver_id: int,
    approver_role: Union[Role, str],
    reason: str,
) -> PurchaseRequest:
    """
    Reject the PR at its current stage

    Earlier approvals stand and later stage records stay pending. The PR
    is terminal afterwards.
    """
    role = _resolve_role(approver_role)
    stage = _resolve_stage(stage)
    if not StageAuthority.can_act(role, stage):
        raise ForbiddenError(f"Role {role.value} cannot reject at the {stage.value} stage")

    if not (reason or "").strip():
        raise InvalidInputError("A rejection reason is required", field="reason")

    pr = _load_for_decision(db, pr_id, stage)

    record = pr.stage_record(stage)
    record.status = StageStatus.REJECTED
    record.approver_id = approver_id
    record.comment = reason.strip()
    record.decided_at = utcnow()

    pr.status = PRStatus.REJECTED

    notification_service.enqueue(
        db,
        pr.requester_id,
        title="Purchase Request Rejected",
        message=f"Your purchase request {pr.pr_number} was rejected at {stage.value}: {reason.strip()}",
        type=NotificationType.APPROVAL_REJECTED,
        related_id=pr.id,
    )

    db.flush()

    logger.info(
        f"{pr.pr_number} rejected at {stage.value}",
        extra={"pr_id": pr.id, "approver_id": approver_id},
    )
    return pr


# ============================================================================
# COMMENTS / ITEMS
# ============================================================================

def add_comment(db: Session, pr_id: int, author_id: int, text: str) -> PRComment:
    if not (text or "").strip():
        raise InvalidInputError("Comment text is required", field="comment")

    pr = get_active_or_404(db, PurchaseRequest, pr_id, "Purchase request")

    comment = PRComment(purchase_request_id=pr.id, user_id=author_id, comment=text.strip())
    db.add(comment)
    db.flush()
    return comment


def update_item(
    db: Session,
    pr_id: int,
    item_id: int,
    caller_id: int,
    quantity=None,
    estimated_price=None,
) -> PRItem:
    """
    Change quantity or price of a line while the PR is pending

    Only the requester may edit. The PR total is not re-derived; it stays
    what the requester submitted.
    """
    pr = get_active_or_404(db, PurchaseRequest, pr_id, "Purchase request", lock=True)

    if pr.requester_id != caller_id:
        raise ForbiddenError("Only the requester can edit purchase request items")
    if pr.status != PRStatus.PENDING:
        raise ConflictError(
            f"Items of a {pr.status.value} purchase request cannot be changed",
            {"status": pr.status.value},
        )

    item = next((line for line in pr.items if line.id == item_id), None)
    if item is None:
        raise NotFoundError("Purchase request item", item_id)

    if quantity is not None:
        item.quantity = require_positive(quantity, "quantity")
    if estimated_price is not None:
        price = to_decimal(estimated_price, "estimated_price")
        if price < 0:
            raise InvalidInputError("estimated_price cannot be negative", field="estimated_price")
        item.estimated_price = price

    item.recompute_total()
    db.flush()
    return item


# ============================================================================
# QUERIES
# ============================================================================

LIST_FILTERS = ("all", "my_requests", "pending_approval", "approved", "rejected")


def get_purchase_request(db: Session, pr_id: int) -> PurchaseRequest:
    return get_active_or_404(db, PurchaseRequest, pr_id, "Purchase request")


def list_purchase_requests(
    db: Session,
    caller_id: int,
    caller_role: Union[Role, str, None],
    filter: str = "all",
    project_id: Optional[int] = None,
) -> List[PurchaseRequest]:
    if filter not in LIST_FILTERS:
        raise InvalidInputError(f"Unknown filter: {filter}", field="filter")

    query = db.query(PurchaseRequest).filter(PurchaseRequest.lifecycle == Lifecycle.ACTIVE)

    if project_id is not None:
        query = query.filter(PurchaseRequest.project_id == project_id)

    if filter == "my_requests":
        query = query.filter(PurchaseRequest.requester_id == caller_id)
    elif filter == "pending_approval":
        stages = StageAuthority.stages_for(Role.parse(caller_role) if caller_role else None)
        if not stages:
            return []
        query = query.filter(
            PurchaseRequest.status == PRStatus.PENDING,
            PurchaseRequest.current_stage.in_(stages),
        )
    elif filter == "approved":
        query = query.filter(PurchaseRequest.status == PRStatus.APPROVED)
    elif filter == "rejected":
        query = query.filter(PurchaseRequest.status == PRStatus.REJECTED)

    return query.order_by(PurchaseRequest.created_at.desc(), PurchaseRequest.id.desc()).all()
