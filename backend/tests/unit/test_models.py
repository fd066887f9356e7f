"""
Unit tests for derived values on models (no database)
"""
from decimal import Decimal

import pytest

from app.exceptions import InvalidInputError
from app.models.bom import BOMEntry
from app.models.material import Material
from app.models.purchase_request import PRItem
from app.services.common import money, to_decimal


class TestPRItemTotal:

    def test_total_is_quantity_times_price(self):
        item = PRItem(quantity=Decimal("3"), estimated_price=Decimal("12.50"))
        item.recompute_total()
        assert item.total_price == Decimal("37.50")

    def test_total_rounds_to_cents(self):
        item = PRItem(quantity=Decimal("0.333"), estimated_price=Decimal("10"))
        item.recompute_total()
        assert item.total_price == Decimal("3.33")


class TestBOMEntryDerivedValues:

    def test_remaining_may_go_negative(self):
        entry = BOMEntry(planned_qty=Decimal("10"), used_qty=Decimal("12"))
        entry.update_remaining_qty()
        assert entry.remaining_qty == Decimal("-2")

    def test_usage_percentage(self):
        entry = BOMEntry(planned_qty=Decimal("200"), used_qty=Decimal("50"))
        assert entry.usage_percentage == Decimal("25")

    def test_usage_percentage_with_zero_plan(self):
        entry = BOMEntry(planned_qty=Decimal("0"), used_qty=Decimal("5"))
        assert entry.usage_percentage == Decimal("0")


class TestMaterialLowStock:

    def test_at_minimum_is_low(self):
        assert Material(stock=Decimal("20"), min_stock=Decimal("20")).is_low_stock

    def test_above_minimum_is_not_low(self):
        assert not Material(stock=Decimal("21"), min_stock=Decimal("20")).is_low_stock


class TestMoneyHelpers:

    def test_money_rounds_half_up(self):
        assert money(Decimal("2.345")) == Decimal("2.35")

    def test_to_decimal_rejects_garbage(self):
        with pytest.raises(InvalidInputError):
            to_decimal("ten", "quantity")

    def test_to_decimal_requires_value(self):
        with pytest.raises(InvalidInputError):
            to_decimal(None, "quantity")
