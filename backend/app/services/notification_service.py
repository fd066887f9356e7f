"""
Notification Service

Outbox side of notifications. Services call enqueue()/enqueue_for_role()
inside their transaction; nothing is delivered until the transaction
commits and the dispatcher picks the rows up. A rolled-back operation
therefore never notifies anyone, and a failing notifier never fails the
operation that produced the message.
"""
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.base import Lifecycle, utcnow
from app.logging_config import get_logger
from app.models.notification import Notification, NotificationType, OutboxNotification, OutboxStatus
from app.models.user import Role, User

logger = get_logger(__name__)


# ============================================================================
# ENQUEUE (inside the business transaction)
# ============================================================================

def enqueue(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    related_id: Optional[int] = None,
) -> OutboxNotification:
    row = OutboxNotification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        related_id=related_id,
        status=OutboxStatus.PENDING,
        attempts=0,
    )
    db.add(row)
    return row


def users_with_roles(db: Session, roles: Iterable[Role]) -> List[User]:
    roles = list(roles)
    if not roles:
        return []
    return db.query(User).filter(
        User.role.in_(roles),
        User.lifecycle == Lifecycle.ACTIVE,
    ).order_by(User.id).all()


def enqueue_for_roles(
    db: Session,
    roles: Iterable[Role],
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    related_id: Optional[int] = None,
) -> int:
    """Fan a message out to every active user holding one of the roles."""
    recipients = users_with_roles(db, roles)
    for user in recipients:
        enqueue(db, user.id, title, message, type, related_id)
    if not recipients:
        logger.info("No recipients for role notification", extra={"roles": [r.value for r in roles], "title": title})
    return len(recipients)


def enqueue_for_role(
    db: Session,
    role: Role,
    title: str,
    message: str,
    type: NotificationType = NotificationType.SYSTEM,
    related_id: Optional[int] = None,
) -> int:
    return enqueue_for_roles(db, [role], title, message, type, related_id)


def low_stock_roles() -> List[Role]:
    roles = []
    for name in settings.LOW_STOCK_NOTIFY_ROLES:
        role = Role.parse(name)
        if role is None:
            logger.warning("Unknown role in LOW_STOCK_NOTIFY_ROLES", extra={"role": name})
            continue
        roles.append(role)
    return roles


# ============================================================================
# DELIVERY
# ============================================================================

class Notifier(Protocol):
    """Delivery sink. Best-effort; may raise on failure."""

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType,
        related_id: Optional[int],
    ) -> None:
        ...


class InboxNotifier:
    """Writes the message into the user's in-app notification inbox."""

    def __init__(self, db: Session):
        self.db = db

    def notify(self, user_id, title, message, type, related_id) -> None:
        self.db.add(Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_id=related_id,
            is_read=False,
        ))


class LoggingNotifier:
    """Development sink that only logs."""

    def __init__(self, db: Optional[Session] = None):
        self.db = db

    def notify(self, user_id, title, message, type, related_id) -> None:
        logger.info(
            f"Notification for user {user_id}: {title}",
            extra={"user_id": user_id, "notification_type": type.value, "related_id": related_id},
        )


class NotificationDispatcher:
    """
    Delivers pending outbox rows.

    Each row is delivered and marked in its own short transaction so one
    bad recipient cannot hold back the rest of the batch. Rows that keep
    failing are marked FAILED after NOTIFY_MAX_ATTEMPTS.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        notifier_factory: Callable[[Session], Notifier] = InboxNotifier,
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.notifier_factory = notifier_factory
        self.max_attempts = max_attempts or settings.NOTIFY_MAX_ATTEMPTS

    def dispatch_pending(self, batch_size: Optional[int] = None) -> Tuple[int, int]:
        """
        Deliver up to batch_size pending rows.

        Returns:
            (sent, failed) counts for this pass
        """
        batch_size = batch_size or settings.NOTIFY_BATCH_SIZE
        sent = failed = 0

        db = self.session_factory()
        try:
            ids = [
                row_id for (row_id,) in db.query(OutboxNotification.id)
                .filter(OutboxNotification.status == OutboxStatus.PENDING)
                .order_by(OutboxNotification.id)
                .limit(batch_size)
                .all()
            ]
            db.rollback()

            notifier = self.notifier_factory(db)
            for row_id in ids:
                outcome = self._deliver(db, notifier, row_id)
                if outcome is True:
                    sent += 1
                elif outcome is False:
                    failed += 1
        finally:
            db.close()

        if ids:
            logger.info("Outbox dispatch pass finished", extra={"sent": sent, "failed": failed})
        return sent, failed

    def _deliver(self, db: Session, notifier: Notifier, row_id: int) -> Optional[bool]:
        row = db.query(OutboxNotification).filter(
            OutboxNotification.id == row_id,
            OutboxNotification.status == OutboxStatus.PENDING,
        ).with_for_update().first()
        if row is None:
            # Picked up by another dispatcher
            db.rollback()
            return None

        try:
            notifier.notify(row.user_id, row.title, row.message, row.type, row.related_id)
            row.status = OutboxStatus.SENT
            row.attempts += 1
            row.sent_at = utcnow()
            db.commit()
            return True
        except Exception as exc:
            db.rollback()
            logger.warning(
                "Notification delivery failed",
                extra={"outbox_id": row_id, "error": str(exc)},
                exc_info=True,
            )
            self._record_failure(db, row_id, exc)
            return False

    def _record_failure(self, db: Session, row_id: int, exc: Exception) -> None:
        try:
            row = db.get(OutboxNotification, row_id)
            if row is None:
                return
            row.attempts += 1
            row.last_error = str(exc)[:2000]
            if row.attempts >= self.max_attempts:
                row.status = OutboxStatus.FAILED
                logger.error("Notification permanently failed", extra={"outbox_id": row_id, "attempts": row.attempts})
            db.commit()
        except Exception:
            db.rollback()
            logger.error("Could not record notification failure", extra={"outbox_id": row_id}, exc_info=True)


# ============================================================================
# INBOX
# ============================================================================

def list_inbox(db: Session, user_id: int, filter: str = "all") -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if filter == "unread":
        query = query.filter(Notification.is_read.is_(False))
    elif filter == "read":
        query = query.filter(Notification.is_read.is_(True))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).count()


def mark_read(db: Session, user_id: int, notification_id: int) -> Optional[Notification]:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if notification is not None:
        notification.is_read = True
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    ).update({Notification.is_read: True}, synchronize_session=False)
