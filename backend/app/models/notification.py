"""
Notification models

OutboxNotification rows are written in the same transaction as the
business change that produced them and delivered afterwards by the
dispatcher. Notification is the per-user inbox the default notifier
writes into.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Index

from app.db.base import Base, enum_column, utcnow


class NotificationType(str, enum.Enum):
    APPROVAL_REQUEST = "approval_request"
    APPROVAL_APPROVED = "approval_approved"
    APPROVAL_REJECTED = "approval_rejected"
    LOW_STOCK = "low_stock"
    SYSTEM = "system"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxNotification(Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (
        Index("ix_outbox_status_id", "status", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = enum_column(NotificationType, default=NotificationType.SYSTEM, nullable=False)
    related_id = Column(Integer, nullable=True)

    status = enum_column(OutboxStatus, length=20, default=OutboxStatus.PENDING, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<OutboxNotification {self.id} -> user {self.user_id} ({self.status.value if self.status else '?'})>"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = enum_column(NotificationType, default=NotificationType.SYSTEM, nullable=False)
    related_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
