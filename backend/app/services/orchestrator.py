"""
Workflow Orchestrator

Transaction boundary for every mutating operation. Each public method:

1. runs the service call inside atomic() - one commit or a full rollback
2. writes the business event to the audit log
3. fires the after-commit hook, which normally kicks the outbox dispatcher

The hook is best-effort. Whatever it raises is logged and dropped; the
operation has already been committed and is reported as successful.
"""
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from app.core.security import Caller
from app.db.session import atomic
from app.logging_config import audit_log, get_logger
from app.models.bom import BOMEntry
from app.models.material import Material, MaterialUsage, StockAdjustment
from app.models.purchase_request import PRComment, PRItem, PurchaseRequest
from app.services import bom_tracker, inventory_ledger, purchase_request_workflow
from app.services.notification_service import NotificationDispatcher

logger = get_logger(__name__)


def dispatch_outbox(dispatcher: NotificationDispatcher) -> None:
    """Run one dispatch pass, logging instead of raising"""
    try:
        dispatcher.dispatch_pending()
    except Exception:
        logger.error("Outbox dispatch failed", exc_info=True)


class WorkflowOrchestrator:
    """
    Entry point for state-changing operations

    Args:
        db: session owned by the caller (one per request)
        on_commit: called after each successful commit
        ip_address: recorded on audit events
    """

    def __init__(
        self,
        db: Session,
        on_commit: Optional[Callable[[], None]] = None,
        ip_address: Optional[str] = None,
    ):
        self.db = db
        self.on_commit = on_commit
        self.ip_address = ip_address

    def _committed(
        self,
        event: str,
        caller: Caller,
        resource_type: str,
        resource_id: Any,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        audit_log(
            event,
            user_id=caller.id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            ip_address=self.ip_address,
        )
        if self.on_commit is None:
            return
        try:
            self.on_commit()
        except Exception:
            logger.error("After-commit hook failed", extra={"event": event}, exc_info=True)

    # ------------------------------------------------------------------
    # Purchase requests
    # ------------------------------------------------------------------

    def create_pr(
        self,
        caller: Caller,
        project_id: int,
        title: str,
        items: Iterable[Mapping[str, Any]],
        total_amount=None,
        priority: str = "normal",
        required_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> PurchaseRequest:
        with atomic(self.db):
            pr = purchase_request_workflow.create_purchase_request(
                self.db,
                requester_id=caller.id,
                project_id=project_id,
                title=title,
                items=items,
                total_amount=total_amount,
                priority=priority,
                required_date=required_date,
                description=description,
            )
        self._committed("PR_CREATED", caller, "purchase_request", pr.id, {
            "pr_number": pr.pr_number,
            "project_id": project_id,
            "total_amount": pr.total_amount,
        })
        return pr

    def approve_pr(self, caller: Caller, pr_id: int, stage: str, comment: Optional[str] = None) -> PurchaseRequest:
        with atomic(self.db):
            pr = purchase_request_workflow.approve(
                self.db, pr_id, stage, approver_id=caller.id, approver_role=caller.role, comment=comment,
            )
        self._committed("PR_STAGE_APPROVED", caller, "purchase_request", pr.id, {
            "pr_number": pr.pr_number,
            "stage": stage,
            "status": pr.status.value,
            "current_stage": pr.current_stage.value,
        })
        return pr

    def reject_pr(self, caller: Caller, pr_id: int, stage: str, reason: str) -> PurchaseRequest:
        with atomic(self.db):
            pr = purchase_request_workflow.reject(
                self.db, pr_id, stage, approver_id=caller.id, approver_role=caller.role, reason=reason,
            )
        self._committed("PR_REJECTED", caller, "purchase_request", pr.id, {
            "pr_number": pr.pr_number,
            "stage": stage,
            "reason": reason,
        })
        return pr

    def comment_pr(self, caller: Caller, pr_id: int, text: str) -> PRComment:
        with atomic(self.db):
            comment = purchase_request_workflow.add_comment(self.db, pr_id, caller.id, text)
        self._committed("PR_COMMENTED", caller, "purchase_request", pr_id, {"comment_id": comment.id})
        return comment

    def update_pr_item(self, caller: Caller, pr_id: int, item_id: int, quantity=None, estimated_price=None) -> PRItem:
        with atomic(self.db):
            item = purchase_request_workflow.update_item(
                self.db, pr_id, item_id, caller.id, quantity=quantity, estimated_price=estimated_price,
            )
        self._committed("PR_ITEM_UPDATED", caller, "purchase_request", pr_id, {
            "item_id": item.id,
            "quantity": item.quantity,
            "estimated_price": item.estimated_price,
        })
        return item

    # ------------------------------------------------------------------
    # Material usage
    # ------------------------------------------------------------------

    def record_material_usage(
        self,
        caller: Caller,
        project_id: int,
        material_id: int,
        quantity,
        usage_date: Optional[Union[date, datetime]] = None,
        notes: Optional[str] = None,
    ) -> MaterialUsage:
        with atomic(self.db):
            usage = inventory_ledger.record_usage(
                self.db, project_id, material_id, quantity, caller.id, usage_date=usage_date, notes=notes,
            )
        self._committed("MATERIAL_USAGE_RECORDED", caller, "material_usage", usage.id, {
            "project_id": project_id,
            "material_id": material_id,
            "quantity": usage.quantity,
            "cost": usage.cost,
        })
        return usage

    def update_material_usage(
        self,
        caller: Caller,
        usage_id: int,
        quantity=None,
        usage_date: Optional[Union[date, datetime]] = None,
        notes: Optional[str] = None,
    ) -> MaterialUsage:
        with atomic(self.db):
            usage = inventory_ledger.update_usage(
                self.db, usage_id, quantity=quantity, usage_date=usage_date, notes=notes,
            )
        self._committed("MATERIAL_USAGE_UPDATED", caller, "material_usage", usage.id, {
            "quantity": usage.quantity,
            "cost": usage.cost,
        })
        return usage

    def delete_material_usage(self, caller: Caller, usage_id: int) -> MaterialUsage:
        with atomic(self.db):
            usage = inventory_ledger.delete_usage(self.db, usage_id)
        self._committed("MATERIAL_USAGE_DELETED", caller, "material_usage", usage.id, {
            "material_id": usage.material_id,
            "quantity": usage.quantity,
        })
        return usage

    # ------------------------------------------------------------------
    # Materials
    # ------------------------------------------------------------------

    def adjust_material_stock(self, caller: Caller, material_id: int, delta, reason: Optional[str] = None) -> StockAdjustment:
        with atomic(self.db):
            adjustment = inventory_ledger.adjust_stock(self.db, material_id, delta, reason, caller.id)
        self._committed("STOCK_ADJUSTED", caller, "material", material_id, {
            "delta": adjustment.delta,
            "resulting_stock": adjustment.resulting_stock,
            "reason": reason,
        })
        return adjustment

    def create_material(self, caller: Caller, **fields) -> Material:
        with atomic(self.db):
            material = inventory_ledger.create_material(self.db, **fields)
        self._committed("MATERIAL_CREATED", caller, "material", material.id, {"code": material.code})
        return material

    def update_material(self, caller: Caller, material_id: int, **changes) -> Material:
        with atomic(self.db):
            material = inventory_ledger.update_material(self.db, material_id, **changes)
        self._committed("MATERIAL_UPDATED", caller, "material", material.id, {"fields": sorted(changes)})
        return material

    # ------------------------------------------------------------------
    # BOM
    # ------------------------------------------------------------------

    def add_bom_entry(
        self,
        caller: Caller,
        project_id: int,
        material_id: int,
        planned_qty,
        phase: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BOMEntry:
        with atomic(self.db):
            entry = bom_tracker.add_entry(self.db, project_id, material_id, planned_qty, phase=phase, notes=notes)
        self._committed("BOM_ENTRY_ADDED", caller, "bom", entry.id, {
            "project_id": project_id,
            "material_id": material_id,
            "planned_qty": entry.planned_qty,
        })
        return entry

    def update_bom_entry(
        self,
        caller: Caller,
        entry_id: int,
        planned_qty=None,
        phase: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BOMEntry:
        with atomic(self.db):
            entry = bom_tracker.update_entry(self.db, entry_id, planned_qty=planned_qty, phase=phase, notes=notes)
        self._committed("BOM_ENTRY_UPDATED", caller, "bom", entry.id, {"planned_qty": entry.planned_qty})
        return entry

    def remove_bom_entry(self, caller: Caller, entry_id: int) -> BOMEntry:
        with atomic(self.db):
            entry = bom_tracker.remove_entry(self.db, entry_id)
        self._committed("BOM_ENTRY_REMOVED", caller, "bom", entry.id)
        return entry

    def recalculate_bom(self, caller: Caller, project_id: int) -> Dict[str, Any]:
        with atomic(self.db):
            summary = bom_tracker.recalculate(self.db, project_id)
        self._committed("BOM_RECALCULATED", caller, "project", project_id, {
            "total_items": summary["total_items"],
            "variance": summary["variance"],
        })
        return summary

    def import_bom_batch(self, caller: Caller, project_id: int, items: List[Mapping[str, Any]]) -> Dict[str, Any]:
        with atomic(self.db):
            result = bom_tracker.import_batch(self.db, project_id, items)
        self._committed("BOM_BATCH_IMPORTED", caller, "project", project_id, {
            "created": len(result["created"]),
            "warnings": len(result["warnings"]),
        })
        return result
