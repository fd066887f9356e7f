"""
SiteLedger exception hierarchy

Every service-level failure is one of these. The FastAPI handler in
app.main renders them as {"error", "message", "details"} with the
matching status code.
"""
from decimal import Decimal
from typing import Any, Dict, Optional


class SiteLedgerException(Exception):
    """Base class for all domain errors."""

    error_code = "ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(SiteLedgerException):
    """Malformed or missing required input."""
    error_code = "INVALID_INPUT"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class NotFoundError(SiteLedgerException):
    """Referenced project, material, PR or entry is absent."""
    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            {"resource": resource, "identifier": str(identifier)},
        )
        self.resource = resource
        self.identifier = identifier


class ConflictError(SiteLedgerException):
    """Duplicate record, stale stage transition or finalized PR."""
    error_code = "CONFLICT"
    status_code = 409


class ForbiddenError(SiteLedgerException):
    """Caller's role may not perform the operation."""
    error_code = "FORBIDDEN"
    status_code = 403


class InsufficientStockError(SiteLedgerException):
    """Requested quantity exceeds the available stock."""
    error_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, material_code: str, requested: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient stock for {material_code}: requested {requested}, available {available}",
            {
                "material": material_code,
                "requested": str(requested),
                "available": str(available),
            },
        )
        self.requested = requested
        self.available = available


class InternalError(SiteLedgerException):
    """Storage or transaction failure. The transaction has been rolled back."""
    error_code = "INTERNAL_ERROR"
    status_code = 500
