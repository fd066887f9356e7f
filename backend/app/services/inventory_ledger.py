"""
Inventory Ledger

Owns Material.stock. Stock only moves through this module:

- record_usage / update_usage / delete_usage: material consumed on a
  project, mirrored into the project's BOM entry when one exists
- adjust_stock: manual correction with a reason

Functions here flush but never commit; the caller (the workflow
orchestrator) owns the transaction so stock, BOM and usage rows change
together or not at all. Material rows are read FOR UPDATE so concurrent
deductions serialize on the row and stock cannot be driven below zero.
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.db.base import Lifecycle, utcnow
from app.exceptions import ConflictError, InsufficientStockError, InvalidInputError, NotFoundError
from app.logging_config import get_logger
from app.models.bom import BOMEntry
from app.models.material import Material, MaterialCategory, MaterialUsage, StockAdjustment
from app.models.notification import NotificationType
from app.models.project import Project
from app.services import notification_service
from app.services.common import get_active_or_404, money, require_positive, to_decimal

logger = get_logger(__name__)


# ============================================================================
# MATERIAL CATALOGUE
# ============================================================================

def create_material(
    db: Session,
    code: str,
    name: str,
    unit: str,
    unit_price,
    category: Union[MaterialCategory, str] = MaterialCategory.OTHER,
    stock=Decimal("0"),
    min_stock=Decimal("0"),
    supplier: Optional[str] = None,
    description: Optional[str] = None,
) -> Material:
    """
    Register a material

    Raises:
        InvalidInputError: missing code/name/unit, negative price or stock
        ConflictError: code already taken
    """
    code = (code or "").strip()
    if not code or not (name or "").strip() or not (unit or "").strip():
        raise InvalidInputError("code, name and unit are required")

    unit_price = to_decimal(unit_price, "unit_price")
    stock = to_decimal(stock, "stock")
    min_stock = to_decimal(min_stock, "min_stock")
    for field, value in (("unit_price", unit_price), ("stock", stock), ("min_stock", min_stock)):
        if value < 0:
            raise InvalidInputError(f"{field} cannot be negative", field=field)

    if db.query(Material).filter(Material.code == code).first():
        raise ConflictError(f"Material code already exists: {code}", {"code": code})

    material = Material(
        code=code,
        name=name.strip(),
        category=_parse_category(category),
        unit=unit.strip(),
        unit_price=unit_price,
        stock=stock,
        min_stock=min_stock,
        supplier=supplier,
        description=description,
    )
    db.add(material)
    db.flush()
    return material


def update_material(db: Session, material_id: int, **changes) -> Material:
    """
    Update catalogue fields of a material

    Stock is not editable here (use adjust_stock). A price change does not
    touch existing BOM estimates; those are snapshots.
    """
    material = get_active_or_404(db, Material, material_id, "Material")

    if "stock" in changes:
        raise InvalidInputError("Stock can only be changed through a stock adjustment", field="stock")

    new_code = changes.get("code")
    if new_code and new_code != material.code:
        clash = db.query(Material).filter(Material.code == new_code, Material.id != material.id).first()
        if clash:
            raise ConflictError(f"Material code already exists: {new_code}", {"code": new_code})
        material.code = new_code

    for field in ("name", "unit", "supplier", "description"):
        if changes.get(field) is not None:
            setattr(material, field, changes[field])

    if changes.get("category") is not None:
        material.category = _parse_category(changes["category"])

    for field in ("unit_price", "min_stock"):
        if changes.get(field) is not None:
            value = to_decimal(changes[field], field)
            if value < 0:
                raise InvalidInputError(f"{field} cannot be negative", field=field)
            setattr(material, field, value)

    db.flush()
    return material


def get_material(db: Session, material_id: int) -> Material:
    return get_active_or_404(db, Material, material_id, "Material")


def list_materials(db: Session, category: Optional[str] = None, search: Optional[str] = None) -> List[Material]:
    query = db.query(Material).filter(Material.lifecycle == Lifecycle.ACTIVE)

    if category:
        query = query.filter(Material.category == _parse_category(category))

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Material.name.ilike(pattern), Material.code.ilike(pattern)))

    return query.order_by(Material.name).all()


def list_low_stock(db: Session) -> List[Material]:
    """Materials at or below their minimum threshold, emptiest first"""
    return db.query(Material).filter(
        Material.lifecycle == Lifecycle.ACTIVE,
        Material.stock <= Material.min_stock,
    ).order_by(Material.stock).all()


def _parse_category(value) -> MaterialCategory:
    if isinstance(value, MaterialCategory):
        return value
    for category in MaterialCategory:
        if category.value.lower() == str(value).strip().lower():
            return category
    raise InvalidInputError(f"Unknown material category: {value}", field="category")


# ============================================================================
# USAGE EVENTS
# ============================================================================

def record_usage(
    db: Session,
    project_id: int,
    material_id: int,
    quantity,
    actor_id: int,
    usage_date: Optional[Union[date, datetime]] = None,
    notes: Optional[str] = None,
) -> MaterialUsage:
    """
    Record material consumed on a project

    Deducts stock, mirrors quantity and cost into the project's BOM entry
    (if any) and queues a low-stock alert when stock ends at or below the
    minimum.

    Raises:
        InvalidInputError: quantity <= 0
        NotFoundError: project or material missing
        InsufficientStockError: quantity exceeds stock
    """
    quantity = require_positive(quantity, "quantity")
    get_active_or_404(db, Project, project_id, "Project")
    material = get_active_or_404(db, Material, material_id, "Material", lock=True)

    if material.stock < quantity:
        raise InsufficientStockError(material.code, quantity, material.stock)

    cost = money(quantity * material.unit_price)

    usage = MaterialUsage(
        project_id=project_id,
        material_id=material_id,
        quantity=quantity,
        cost=cost,
        usage_date=_as_datetime(usage_date),
        used_by=actor_id,
        notes=notes,
    )
    db.add(usage)

    material.stock = material.stock - quantity
    entry = _apply_to_bom(db, project_id, material_id, quantity, cost)
    if entry is not None:
        usage.bom_entry_id = entry.id

    db.flush()

    logger.info(
        "Material usage recorded",
        extra={"usage_id": usage.id, "material_id": material_id, "project_id": project_id,
               "quantity": str(quantity), "stock": str(material.stock)},
    )

    if material.is_low_stock:
        _queue_low_stock_alert(db, material)

    return usage


def update_usage(
    db: Session,
    usage_id: int,
    quantity=None,
    usage_date: Optional[Union[date, datetime]] = None,
    notes: Optional[str] = None,
) -> MaterialUsage:
    """
    Change a usage record

    Only the difference between the old and new quantity is applied to
    stock and to the BOM entry the usage was booked against. The cost
    moves by that difference at the material's current price, on both
    the usage and the entry.

    Raises:
        NotFoundError: usage missing
        InsufficientStockError: the increase exceeds available stock
    """
    usage = get_active_or_404(db, MaterialUsage, usage_id, "Material usage")

    if quantity is not None:
        new_quantity = require_positive(quantity, "quantity")
        old_quantity = Decimal(usage.quantity)

        if new_quantity != old_quantity:
            material = db.query(Material).filter(Material.id == usage.material_id).with_for_update().first()
            if material is None:
                raise NotFoundError("Material", usage.material_id)

            delta = new_quantity - old_quantity
            if delta > 0 and material.stock < delta:
                raise InsufficientStockError(material.code, delta, material.stock)

            cost_delta = money(delta * material.unit_price)

            material.stock = material.stock - delta
            _apply_to_booked_entry(db, usage, delta, cost_delta)

            usage.quantity = new_quantity
            usage.cost = money(Decimal(usage.cost) + cost_delta)

            logger.info(
                "Material usage quantity changed",
                extra={"usage_id": usage.id, "delta": str(delta), "stock": str(material.stock)},
            )

            if delta > 0 and material.is_low_stock:
                _queue_low_stock_alert(db, material)

    if usage_date is not None:
        usage.usage_date = _as_datetime(usage_date)

    if notes is not None:
        usage.notes = notes

    db.flush()
    return usage


def delete_usage(db: Session, usage_id: int) -> MaterialUsage:
    """
    Archive a usage record and return its quantity to stock

    The BOM entry gives back exactly the quantity and cost that were
    booked against it.
    """
    usage = get_active_or_404(db, MaterialUsage, usage_id, "Material usage")

    material = db.query(Material).filter(Material.id == usage.material_id).with_for_update().first()
    if material is None:
        raise NotFoundError("Material", usage.material_id)

    material.stock = material.stock + usage.quantity
    _apply_to_booked_entry(db, usage, -Decimal(usage.quantity), -Decimal(usage.cost))

    usage.lifecycle = Lifecycle.ARCHIVED
    db.flush()

    logger.info(
        "Material usage deleted, stock restored",
        extra={"usage_id": usage.id, "material_id": material.id, "stock": str(material.stock)},
    )
    return usage


def get_usage(db: Session, usage_id: int) -> MaterialUsage:
    return get_active_or_404(db, MaterialUsage, usage_id, "Material usage")


def list_usage_by_project(db: Session, project_id: int) -> List[MaterialUsage]:
    return db.query(MaterialUsage).filter(
        MaterialUsage.project_id == project_id,
        MaterialUsage.lifecycle == Lifecycle.ACTIVE,
    ).order_by(MaterialUsage.usage_date.desc(), MaterialUsage.id.desc()).all()


def usage_stats(db: Session, project_id: int) -> Dict[str, object]:
    """Record count, distinct materials and total cost for a project"""
    row = db.query(
        func.count(MaterialUsage.id),
        func.count(func.distinct(MaterialUsage.material_id)),
        func.coalesce(func.sum(MaterialUsage.cost), 0),
    ).filter(
        MaterialUsage.project_id == project_id,
        MaterialUsage.lifecycle == Lifecycle.ACTIVE,
    ).one()

    return {
        "total_records": row[0],
        "unique_materials": row[1],
        "total_cost": money(Decimal(str(row[2]))),
    }


# ============================================================================
# STOCK ADJUSTMENT
# ============================================================================

def adjust_stock(db: Session, material_id: int, delta, reason: Optional[str], actor_id: int) -> StockAdjustment:
    """
    Manual stock correction

    Args:
        delta: signed quantity; positive adds stock, negative removes it

    Raises:
        InvalidInputError: delta is zero
        InsufficientStockError: the result would be negative
    """
    delta = to_decimal(delta, "adjustment")
    if delta == 0:
        raise InvalidInputError("adjustment must not be zero", field="adjustment")

    material = get_active_or_404(db, Material, material_id, "Material", lock=True)

    new_stock = material.stock + delta
    if new_stock < 0:
        raise InsufficientStockError(material.code, -delta, material.stock)

    material.stock = new_stock
    adjustment = StockAdjustment(
        material_id=material.id,
        delta=delta,
        resulting_stock=new_stock,
        reason=reason,
        adjusted_by=actor_id,
    )
    db.add(adjustment)
    db.flush()

    logger.info(
        "Stock adjusted",
        extra={"material_id": material.id, "delta": str(delta), "stock": str(new_stock), "reason": reason},
    )

    if material.is_low_stock:
        _queue_low_stock_alert(db, material)

    return adjustment


# ============================================================================
# HELPERS
# ============================================================================

def _apply_to_bom(db: Session, project_id: int, material_id: int, qty_delta: Decimal, cost_delta: Decimal) -> Optional[BOMEntry]:
    """Book onto the project's active BOM entry for the material, if there is one"""
    entry = db.query(BOMEntry).filter(
        BOMEntry.project_id == project_id,
        BOMEntry.material_id == material_id,
        BOMEntry.lifecycle == Lifecycle.ACTIVE,
    ).with_for_update().first()
    return _move_entry(entry, qty_delta, cost_delta)


def _apply_to_booked_entry(db: Session, usage: MaterialUsage, qty_delta: Decimal, cost_delta: Decimal) -> Optional[BOMEntry]:
    """Move only the entry the usage was booked against; unbooked usage touches no BOM"""
    if usage.bom_entry_id is None:
        return None

    entry = db.query(BOMEntry).filter(
        BOMEntry.id == usage.bom_entry_id,
        BOMEntry.lifecycle == Lifecycle.ACTIVE,
    ).with_for_update().first()
    return _move_entry(entry, qty_delta, cost_delta)


def _move_entry(entry: Optional[BOMEntry], qty_delta: Decimal, cost_delta: Decimal) -> Optional[BOMEntry]:
    if entry is None:
        return None

    entry.used_qty = Decimal(entry.used_qty or 0) + qty_delta
    entry.actual_cost = Decimal(entry.actual_cost or 0) + cost_delta
    entry.update_remaining_qty()
    return entry


def _queue_low_stock_alert(db: Session, material: Material) -> None:
    notification_service.enqueue_for_roles(
        db,
        notification_service.low_stock_roles(),
        title="Low Stock Alert",
        message=(
            f"Material '{material.name}' ({material.code}) is low on stock. "
            f"Current: {material.stock} {material.unit}, Minimum: {material.min_stock} {material.unit}"
        ),
        type=NotificationType.LOW_STOCK,
        related_id=material.id,
    )
    logger.warning(
        "Material at or below minimum stock",
        extra={"material_id": material.id, "stock": str(material.stock), "min_stock": str(material.min_stock)},
    )


def _as_datetime(value: Optional[Union[date, datetime]]) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    return datetime.combine(value, time.min)
