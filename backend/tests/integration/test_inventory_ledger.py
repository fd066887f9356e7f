"""
Integration tests for the inventory ledger

Stock movements through usage events and manual adjustments, run
through the orchestrator so each call is its own committed transaction.
"""
from datetime import date
from decimal import Decimal

import pytest

from app.exceptions import ConflictError, InsufficientStockError, InvalidInputError, NotFoundError
from app.models import (
    BOMEntry,
    Material,
    MaterialUsage,
    NotificationType,
    OutboxNotification,
    Role,
    StockAdjustment,
)
from app.services import inventory_ledger
from app.services.orchestrator import WorkflowOrchestrator


@pytest.fixture
def orchestrator(db_session):
    return WorkflowOrchestrator(db_session)


@pytest.fixture
def field(callers):
    return callers[Role.FIELD_TEAM]


@pytest.fixture
def cement_bom(db_session, project, cement, orchestrator, callers):
    return orchestrator.add_bom_entry(callers[Role.MANAGER], project.id, cement.id, Decimal("100"))


def _low_stock_rows(db_session, material_id):
    return db_session.query(OutboxNotification).filter(
        OutboxNotification.type == NotificationType.LOW_STOCK,
        OutboxNotification.related_id == material_id,
    ).all()


class TestRecordUsage:

    def test_usage_deducts_stock_and_books_bom(self, db_session, orchestrator, field, project, cement, cement_bom):
        """stock 100, min 20: using 90 leaves 10 and raises a low-stock alert"""
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("90"))

        db_session.refresh(cement)
        db_session.refresh(cement_bom)
        assert cement.stock == Decimal("10")
        assert usage.cost == Decimal("6750.00")
        assert usage.used_by == field.id
        assert cement_bom.used_qty == Decimal("90")
        assert cement_bom.actual_cost == Decimal("6750.00")
        assert cement_bom.remaining_qty == Decimal("10")

        alerts = _low_stock_rows(db_session, cement.id)
        # director, manager, purchasing, cost_control, general_manager
        assert len(alerts) == 5
        assert "Portland Cement 50kg" in alerts[0].message

    def test_usage_above_stock_is_refused(self, db_session, orchestrator, field, project, cement, cement_bom):
        with pytest.raises(InsufficientStockError) as exc_info:
            orchestrator.record_material_usage(field, project.id, cement.id, Decimal("150"))

        assert Decimal(exc_info.value.details["available"]) == Decimal("100")
        db_session.refresh(cement)
        db_session.refresh(cement_bom)
        assert cement.stock == Decimal("100")
        assert cement_bom.used_qty == Decimal("0")
        assert db_session.query(MaterialUsage).count() == 0
        assert _low_stock_rows(db_session, cement.id) == []

    def test_usage_without_bom_entry_only_moves_stock(self, db_session, orchestrator, field, project, cable):
        orchestrator.record_material_usage(field, project.id, cable.id, Decimal("100"))

        db_session.refresh(cable)
        assert cable.stock == Decimal("400")
        assert db_session.query(BOMEntry).count() == 0

    def test_stock_above_minimum_sends_no_alert(self, db_session, orchestrator, field, project, cement):
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        assert _low_stock_rows(db_session, cement.id) == []

    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-5")])
    def test_quantity_must_be_positive(self, orchestrator, field, project, cement, quantity):
        with pytest.raises(InvalidInputError):
            orchestrator.record_material_usage(field, project.id, cement.id, quantity)

    def test_unknown_project(self, orchestrator, field, cement):
        with pytest.raises(NotFoundError):
            orchestrator.record_material_usage(field, 9999, cement.id, Decimal("1"))

    def test_unknown_material(self, orchestrator, field, project):
        with pytest.raises(NotFoundError):
            orchestrator.record_material_usage(field, project.id, 9999, Decimal("1"))

    def test_usage_date_is_kept(self, orchestrator, field, project, cement):
        usage = orchestrator.record_material_usage(
            field, project.id, cement.id, Decimal("1"), usage_date=date(2025, 3, 14), notes="Column footing",
        )
        assert usage.usage_date.date() == date(2025, 3, 14)
        assert usage.notes == "Column footing"


class TestUpdateUsage:

    def test_increase_applies_only_the_difference(self, db_session, orchestrator, field, project, cement, cement_bom):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        orchestrator.update_material_usage(field, usage.id, quantity=Decimal("25"))

        db_session.refresh(cement)
        db_session.refresh(cement_bom)
        assert cement.stock == Decimal("75")
        assert cement_bom.used_qty == Decimal("25")
        assert cement_bom.actual_cost == Decimal("1875.00")
        assert cement_bom.remaining_qty == Decimal("75")

    def test_decrease_returns_stock(self, db_session, orchestrator, field, project, cement, cement_bom):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("30"))
        orchestrator.update_material_usage(field, usage.id, quantity=Decimal("10"))

        db_session.refresh(cement)
        db_session.refresh(cement_bom)
        assert cement.stock == Decimal("90")
        assert cement_bom.used_qty == Decimal("10")

    def test_increase_beyond_stock_is_refused(self, db_session, orchestrator, field, project, cement):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("60"))

        with pytest.raises(InsufficientStockError):
            orchestrator.update_material_usage(field, usage.id, quantity=Decimal("200"))

        db_session.refresh(cement)
        db_session.refresh(usage)
        assert cement.stock == Decimal("40")
        assert usage.quantity == Decimal("60")

    def test_cost_follows_current_price(self, db_session, orchestrator, field, callers, project, cement, cement_bom):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        orchestrator.update_material(callers[Role.PURCHASING], cement.id, unit_price=Decimal("80.00"))

        usage = orchestrator.update_material_usage(field, usage.id, quantity=Decimal("12"))

        db_session.refresh(cement_bom)
        # 750.00 booked at the old price plus 2 x 80.00, on both sides
        assert usage.cost == Decimal("910.00")
        assert cement_bom.actual_cost == Decimal("910.00")
        # Estimate is a snapshot and ignores the price change
        assert cement_bom.estimated_cost == Decimal("7500.00")

    def test_notes_only_change_leaves_stock_alone(self, db_session, orchestrator, field, project, cement):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("5"))
        orchestrator.update_material_usage(field, usage.id, notes="Second pour")

        db_session.refresh(cement)
        assert cement.stock == Decimal("95")
        assert usage.notes == "Second pour"

    def test_unknown_usage(self, orchestrator, field):
        with pytest.raises(NotFoundError):
            orchestrator.update_material_usage(field, 4242, quantity=Decimal("1"))


class TestDeleteUsage:

    def test_delete_restores_stock_and_bom(self, db_session, orchestrator, field, project, cement, cement_bom):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("35"))
        orchestrator.delete_material_usage(field, usage.id)

        db_session.refresh(cement)
        db_session.refresh(cement_bom)
        assert cement.stock == Decimal("100")
        assert cement_bom.used_qty == Decimal("0")
        assert cement_bom.actual_cost == Decimal("0")
        assert cement_bom.remaining_qty == Decimal("100")

    def test_deleted_usage_is_hidden(self, db_session, orchestrator, field, project, cement):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("5"))
        orchestrator.delete_material_usage(field, usage.id)

        assert inventory_ledger.list_usage_by_project(db_session, project.id) == []
        with pytest.raises(NotFoundError):
            inventory_ledger.get_usage(db_session, usage.id)

    def test_delete_twice_is_not_found(self, orchestrator, field, project, cement):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("5"))
        orchestrator.delete_material_usage(field, usage.id)

        with pytest.raises(NotFoundError):
            orchestrator.delete_material_usage(field, usage.id)


class TestBOMBooking:
    """Usage only ever moves the BOM entry it was booked against"""

    def test_usage_remembers_its_entry(self, orchestrator, field, project, cement, cement_bom):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        assert usage.bom_entry_id == cement_bom.id

    def test_delete_of_usage_recorded_before_plan_leaves_plan_alone(
        self, db_session, orchestrator, field, callers, project, cement
    ):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        assert usage.bom_entry_id is None
        entry = orchestrator.add_bom_entry(callers[Role.MANAGER], project.id, cement.id, Decimal("50"))

        orchestrator.delete_material_usage(field, usage.id)

        db_session.refresh(entry)
        db_session.refresh(cement)
        assert cement.stock == Decimal("100")
        assert entry.used_qty == Decimal("0")
        assert entry.actual_cost == Decimal("0")
        assert entry.remaining_qty == Decimal("50")

    def test_update_of_usage_recorded_before_plan_leaves_plan_alone(
        self, db_session, orchestrator, field, callers, project, cement
    ):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        entry = orchestrator.add_bom_entry(callers[Role.MANAGER], project.id, cement.id, Decimal("50"))

        usage = orchestrator.update_material_usage(field, usage.id, quantity=Decimal("4"))

        db_session.refresh(entry)
        db_session.refresh(cement)
        assert cement.stock == Decimal("96")
        assert usage.cost == Decimal("300.00")
        assert entry.used_qty == Decimal("0")
        assert entry.actual_cost == Decimal("0")

    def test_recalculate_books_earlier_usage_onto_the_plan(
        self, db_session, orchestrator, field, callers, project, cement
    ):
        manager = callers[Role.MANAGER]
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        entry = orchestrator.add_bom_entry(manager, project.id, cement.id, Decimal("50"))

        orchestrator.recalculate_bom(manager, project.id)
        db_session.refresh(usage)
        db_session.refresh(entry)
        assert usage.bom_entry_id == entry.id
        assert entry.used_qty == Decimal("10")

        orchestrator.delete_material_usage(field, usage.id)
        db_session.refresh(entry)
        assert entry.used_qty == Decimal("0")
        assert entry.actual_cost == Decimal("0")

    def test_delete_after_price_change_is_exact_inverse(
        self, db_session, orchestrator, field, callers, project, cement, cement_bom
    ):
        usage = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("10"))
        orchestrator.update_material(callers[Role.PURCHASING], cement.id, unit_price=Decimal("80.00"))
        orchestrator.update_material_usage(field, usage.id, quantity=Decimal("12"))

        orchestrator.delete_material_usage(field, usage.id)

        db_session.refresh(cement_bom)
        assert cement_bom.used_qty == Decimal("0")
        assert cement_bom.actual_cost == Decimal("0")


class TestUsageQueries:

    def test_list_and_stats(self, db_session, orchestrator, field, project, cement, cable):
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("2"), usage_date=date(2025, 1, 5))
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("3"), usage_date=date(2025, 1, 9))
        orchestrator.record_material_usage(field, project.id, cable.id, Decimal("10"), usage_date=date(2025, 1, 7))

        usages = inventory_ledger.list_usage_by_project(db_session, project.id)
        assert [u.usage_date.day for u in usages] == [9, 7, 5]

        stats = inventory_ledger.usage_stats(db_session, project.id)
        assert stats["total_records"] == 3
        assert stats["unique_materials"] == 2
        # 5 x 75.00 + 10 x 2.50
        assert stats["total_cost"] == Decimal("400.00")

    def test_stats_for_empty_project(self, db_session, project):
        stats = inventory_ledger.usage_stats(db_session, project.id)
        assert stats == {"total_records": 0, "unique_materials": 0, "total_cost": Decimal("0.00")}


class TestAdjustStock:

    def test_positive_adjustment(self, db_session, orchestrator, callers, cement):
        adjustment = orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("50"), "Delivery")

        db_session.refresh(cement)
        assert cement.stock == Decimal("150")
        assert adjustment.resulting_stock == Decimal("150")
        assert db_session.query(StockAdjustment).count() == 1

    def test_negative_result_is_refused(self, db_session, orchestrator, callers, cement):
        with pytest.raises(InsufficientStockError):
            orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("-101"), "Count")

        db_session.refresh(cement)
        assert cement.stock == Decimal("100")
        assert db_session.query(StockAdjustment).count() == 0

    def test_adjusting_to_zero_is_allowed(self, db_session, orchestrator, callers, cement):
        orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("-100"), "Write-off")
        db_session.refresh(cement)
        assert cement.stock == Decimal("0")

    def test_zero_adjustment_is_invalid(self, orchestrator, callers, cement):
        with pytest.raises(InvalidInputError):
            orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("0"))

    def test_adjustment_into_low_stock_alerts(self, db_session, orchestrator, callers, cement):
        orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("-85"), "Damaged")
        assert len(_low_stock_rows(db_session, cement.id)) == 5


class TestMaterialCatalogue:

    def test_create_material(self, db_session, orchestrator, callers):
        material = orchestrator.create_material(
            callers[Role.PURCHASING],
            code="MAT-PLB-01",
            name="PVC Pipe 3in",
            unit="pcs",
            unit_price=Decimal("12.00"),
            category="Plumbing",
            stock=Decimal("40"),
            min_stock=Decimal("10"),
        )
        assert material.id is not None
        assert material.category.value == "Plumbing"
        assert not material.is_low_stock

    def test_duplicate_code_conflicts(self, orchestrator, callers, cement):
        with pytest.raises(ConflictError):
            orchestrator.create_material(
                callers[Role.PURCHASING], code=cement.code, name="Other cement", unit="sack", unit_price=Decimal("70"),
            )

    def test_unknown_category(self, orchestrator, callers):
        with pytest.raises(InvalidInputError):
            orchestrator.create_material(
                callers[Role.PURCHASING], code="X-1", name="X", unit="pcs", unit_price=Decimal("1"), category="Magic",
            )

    def test_stock_cannot_be_edited_directly(self, orchestrator, callers, cement):
        with pytest.raises(InvalidInputError):
            orchestrator.update_material(callers[Role.PURCHASING], cement.id, stock=Decimal("500"))

    def test_update_rejects_taken_code(self, orchestrator, callers, cement, cable):
        with pytest.raises(ConflictError):
            orchestrator.update_material(callers[Role.PURCHASING], cable.id, code=cement.code)

    def test_list_filters(self, db_session, cement, cable):
        assert [m.code for m in inventory_ledger.list_materials(db_session, category="Electrical")] == ["MAT-ELC-01"]
        assert [m.code for m in inventory_ledger.list_materials(db_session, search="cement")] == ["MAT-CEM-01"]
        assert len(inventory_ledger.list_materials(db_session)) == 2

    def test_low_stock_list(self, db_session, orchestrator, field, project, cement, cable):
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("85"))

        low = inventory_ledger.list_low_stock(db_session)
        assert [m.id for m in low] == [cement.id]

    def test_stock_never_negative_across_operations(self, db_session, orchestrator, field, callers, project, cement):
        first = orchestrator.record_material_usage(field, project.id, cement.id, Decimal("70"))
        orchestrator.record_material_usage(field, project.id, cement.id, Decimal("30"))
        with pytest.raises(InsufficientStockError):
            orchestrator.update_material_usage(field, first.id, quantity=Decimal("71"))
        with pytest.raises(InsufficientStockError):
            orchestrator.adjust_material_stock(callers[Role.PURCHASING], cement.id, Decimal("-1"))
        orchestrator.delete_material_usage(field, first.id)

        stock = db_session.query(Material.stock).filter(Material.id == cement.id).scalar()
        assert stock == Decimal("70")
