"""
Unit tests for the domain exception hierarchy
"""
from decimal import Decimal

import pytest

from app.exceptions import (
    ConflictError,
    ForbiddenError,
    InsufficientStockError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    SiteLedgerException,
)


@pytest.mark.parametrize("exc,status,code", [
    (InvalidInputError("bad"), 400, "INVALID_INPUT"),
    (ForbiddenError("no"), 403, "FORBIDDEN"),
    (NotFoundError("Material", 9), 404, "NOT_FOUND"),
    (ConflictError("dup"), 409, "CONFLICT"),
    (InsufficientStockError("MAT-1", Decimal("5"), Decimal("2")), 409, "INSUFFICIENT_STOCK"),
    (InternalError("db"), 500, "INTERNAL_ERROR"),
])
def test_status_and_error_codes(exc, status, code):
    assert isinstance(exc, SiteLedgerException)
    assert exc.status_code == status
    assert exc.to_dict()["error"] == code


def test_to_dict_shape():
    body = ConflictError("Stage already decided", {"stage": "GM"}).to_dict()
    assert body == {"error": "CONFLICT", "message": "Stage already decided", "details": {"stage": "GM"}}


def test_invalid_input_records_field():
    exc = InvalidInputError("quantity must be greater than zero", field="quantity")
    assert exc.field == "quantity"
    assert exc.details["field"] == "quantity"


def test_not_found_message():
    exc = NotFoundError("Project", 12)
    assert exc.message == "Project not found: 12"
    assert exc.details == {"resource": "Project", "identifier": "12"}


def test_insufficient_stock_details():
    exc = InsufficientStockError("MAT-CEM-01", Decimal("150"), Decimal("100"))
    assert exc.details == {"material": "MAT-CEM-01", "requested": "150", "available": "100"}
    assert exc.requested == Decimal("150")
    assert exc.available == Decimal("100")
