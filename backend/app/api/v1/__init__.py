"""
API v1 Router - SiteLedger
"""
from fastapi import APIRouter
from app.api.v1.endpoints import (
    purchase_requests,
    materials,
    material_usage,
    bom,
    notifications,
)

router = APIRouter()

# Purchase Requests (multi-stage approval)
router.include_router(
    purchase_requests.router,
    prefix="/purchase-requests",
    tags=["purchase-requests"]
)

# Materials (catalogue + stock adjustments)
router.include_router(
    materials.router,
    prefix="/materials",
    tags=["materials"]
)

# Material Usage (stock deductions)
router.include_router(
    material_usage.router,
    prefix="/material-usage",
    tags=["materials"]
)

# Bill of Materials
router.include_router(
    bom.router,
    prefix="/bom",
    tags=["bom"]
)

# Notification inbox
router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"]
)
