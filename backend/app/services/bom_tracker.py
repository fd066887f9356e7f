"""
BOM Tracker

Per-project plan of material quantities. Planned quantity and estimated
cost are set here; used quantity and actual cost are only ever moved by
usage events (see inventory_ledger) or re-derived from them by
recalculate().
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.base import Lifecycle
from app.exceptions import ConflictError, InvalidInputError, SiteLedgerException
from app.logging_config import get_logger
from app.models.bom import BOMEntry
from app.models.material import Material, MaterialUsage
from app.models.project import Project
from app.services.common import get_active_or_404, money, require_positive

logger = get_logger(__name__)


def add_entry(
    db: Session,
    project_id: int,
    material_id: int,
    planned_qty,
    phase: Optional[str] = None,
    notes: Optional[str] = None,
) -> BOMEntry:
    """
    Plan a material for a project

    estimated_cost is a snapshot of planned_qty x the material's current
    price. An archived entry for the same pair is brought back with the
    new plan rather than duplicated.

    Raises:
        InvalidInputError: planned_qty <= 0
        NotFoundError: project or material missing
        ConflictError: the project already plans this material
    """
    planned_qty = require_positive(planned_qty, "planned_qty")
    get_active_or_404(db, Project, project_id, "Project")
    material = get_active_or_404(db, Material, material_id, "Material")

    existing = db.query(BOMEntry).filter(
        BOMEntry.project_id == project_id,
        BOMEntry.material_id == material_id,
    ).first()

    if existing is not None and existing.lifecycle == Lifecycle.ACTIVE:
        raise ConflictError(
            f"BOM entry already exists for material {material.code}",
            {"project_id": project_id, "material_id": material_id, "bom_id": existing.id},
        )

    entry = existing or BOMEntry(project_id=project_id, material_id=material_id)
    entry.planned_qty = planned_qty
    entry.used_qty = Decimal("0")
    entry.actual_cost = Decimal("0")
    entry.estimated_cost = money(planned_qty * material.unit_price)
    entry.phase = phase
    entry.notes = notes
    entry.lifecycle = Lifecycle.ACTIVE
    entry.update_remaining_qty()

    if existing is None:
        db.add(entry)
    db.flush()

    logger.info(
        "BOM entry added" if existing is None else "BOM entry reactivated",
        extra={"bom_id": entry.id, "project_id": project_id, "material_id": material_id},
    )
    return entry


def update_entry(
    db: Session,
    entry_id: int,
    planned_qty=None,
    phase: Optional[str] = None,
    notes: Optional[str] = None,
) -> BOMEntry:
    """Change the plan; a new planned_qty re-snapshots estimated_cost at today's price"""
    entry = get_active_or_404(db, BOMEntry, entry_id, "BOM entry", lock=True)

    if planned_qty is not None:
        planned_qty = require_positive(planned_qty, "planned_qty")
        material = db.get(Material, entry.material_id)
        entry.planned_qty = planned_qty
        entry.estimated_cost = money(planned_qty * material.unit_price)
        entry.update_remaining_qty()

    if phase is not None:
        entry.phase = phase
    if notes is not None:
        entry.notes = notes

    db.flush()
    return entry


def remove_entry(db: Session, entry_id: int) -> BOMEntry:
    """Archive an entry that nothing has been booked against yet"""
    entry = get_active_or_404(db, BOMEntry, entry_id, "BOM entry", lock=True)

    if Decimal(entry.used_qty or 0) > 0:
        raise ConflictError(
            "Cannot remove a BOM entry with recorded usage",
            {"bom_id": entry.id, "used_qty": str(entry.used_qty)},
        )

    entry.lifecycle = Lifecycle.ARCHIVED
    db.flush()
    return entry


def list_entries(db: Session, project_id: int) -> List[BOMEntry]:
    return db.query(BOMEntry).filter(
        BOMEntry.project_id == project_id,
        BOMEntry.lifecycle == Lifecycle.ACTIVE,
    ).order_by(BOMEntry.phase, BOMEntry.created_at, BOMEntry.id).all()


def recalculate(db: Session, project_id: int) -> Dict[str, Any]:
    """
    Re-derive used_qty and actual_cost from the project's usage events

    Returns:
        Dict with total_items, total_estimated, total_actual, variance,
        variance_percentage (None when nothing was estimated),
        avg_usage_percentage and the entries themselves
    """
    get_active_or_404(db, Project, project_id, "Project")

    usage_totals = {
        material_id: (Decimal(str(qty)), Decimal(str(cost)))
        for material_id, qty, cost in db.query(
            MaterialUsage.material_id,
            func.coalesce(func.sum(MaterialUsage.quantity), 0),
            func.coalesce(func.sum(MaterialUsage.cost), 0),
        ).filter(
            MaterialUsage.project_id == project_id,
            MaterialUsage.lifecycle == Lifecycle.ACTIVE,
        ).group_by(MaterialUsage.material_id).all()
    }

    entries = db.query(BOMEntry).filter(
        BOMEntry.project_id == project_id,
        BOMEntry.lifecycle == Lifecycle.ACTIVE,
    ).order_by(BOMEntry.phase, BOMEntry.created_at, BOMEntry.id).with_for_update().all()

    total_estimated = Decimal("0")
    total_actual = Decimal("0")
    usage_percentages = []

    for entry in entries:
        # Usage recorded before the entry existed is counted from now on, so book it here
        db.query(MaterialUsage).filter(
            MaterialUsage.project_id == project_id,
            MaterialUsage.material_id == entry.material_id,
            MaterialUsage.lifecycle == Lifecycle.ACTIVE,
            MaterialUsage.bom_entry_id.is_(None),
        ).update({MaterialUsage.bom_entry_id: entry.id}, synchronize_session="fetch")

        used_qty, actual_cost = usage_totals.get(entry.material_id, (Decimal("0"), Decimal("0")))
        entry.used_qty = used_qty
        entry.actual_cost = money(actual_cost)
        entry.update_remaining_qty()

        total_estimated += Decimal(entry.estimated_cost or 0)
        total_actual += entry.actual_cost
        usage_percentages.append(entry.usage_percentage)

    db.flush()

    variance = total_actual - total_estimated
    variance_percentage = None
    if total_estimated != 0:
        variance_percentage = (variance / total_estimated * 100).quantize(Decimal("0.01"))

    avg_usage = Decimal("0")
    if usage_percentages:
        avg_usage = (sum(usage_percentages, Decimal("0")) / len(usage_percentages)).quantize(Decimal("0.01"))

    logger.info(
        "BOM recalculated",
        extra={"project_id": project_id, "entries": len(entries), "variance": str(variance)},
    )

    return {
        "project_id": project_id,
        "total_items": len(entries),
        "total_estimated": money(total_estimated),
        "total_actual": money(total_actual),
        "variance": money(variance),
        "variance_percentage": variance_percentage,
        "avg_usage_percentage": avg_usage,
        "entries": entries,
    }


def import_batch(db: Session, project_id: int, items: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Add many entries at once, skipping the ones that fail

    Each line is validated by add_entry before anything is written, so a
    failed line leaves no trace. When no line succeeds the batch is an
    InvalidInputError carrying every warning; the caller's transaction
    rolls back.

    Returns:
        {"created": [BOMEntry, ...], "warnings": [str, ...]}
    """
    get_active_or_404(db, Project, project_id, "Project")

    items = list(items or [])
    if not items:
        raise InvalidInputError("No BOM items to import", field="items")

    created: List[BOMEntry] = []
    warnings: List[str] = []

    for index, item in enumerate(items):
        material_id = item.get("material_id")
        try:
            entry = add_entry(
                db,
                project_id=project_id,
                material_id=material_id,
                planned_qty=item.get("planned_qty"),
                phase=item.get("phase"),
                notes=item.get("notes"),
            )
            created.append(entry)
        except SiteLedgerException as exc:
            warnings.append(f"Item {index + 1} (material {material_id}): {exc.message}")

    if not created:
        raise InvalidInputError(
            "No BOM items could be imported",
            details={"warnings": warnings},
        )

    logger.info(
        "BOM batch imported",
        extra={"project_id": project_id, "created": len(created), "skipped": len(warnings)},
    )
    return {"created": created, "warnings": warnings}
