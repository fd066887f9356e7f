"""
SiteLedger models

Importing this package registers every table on Base.metadata.
"""
from app.models.user import User, Role
from app.models.project import Project
from app.models.material import Material, MaterialCategory, MaterialUsage, StockAdjustment
from app.models.bom import BOMEntry
from app.models.purchase_request import (
    PurchaseRequest,
    PRItem,
    PRComment,
    PRStatus,
    PRPriority,
    ApprovalStage,
    ApprovalStageRecord,
    StageStatus,
    PRNumberSequence,
)
from app.models.notification import Notification, NotificationType, OutboxNotification, OutboxStatus

__all__ = [
    "User", "Role",
    "Project",
    "Material", "MaterialCategory", "MaterialUsage", "StockAdjustment",
    "BOMEntry",
    "PurchaseRequest", "PRItem", "PRComment", "PRStatus", "PRPriority",
    "ApprovalStage", "ApprovalStageRecord", "StageStatus", "PRNumberSequence",
    "Notification", "NotificationType", "OutboxNotification", "OutboxStatus",
]
