"""
Shared API dependencies
"""
from typing import Optional

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import SessionLocal, get_db
from app.logging_config import get_client_ip
from app.services.notification_service import NotificationDispatcher
from app.services.orchestrator import WorkflowOrchestrator, dispatch_outbox


def get_outbox_dispatcher() -> Optional[NotificationDispatcher]:
    """Dispatcher used after each commit, or None when delivery is left to the worker"""
    if not settings.NOTIFY_AFTER_COMMIT:
        return None
    return NotificationDispatcher(SessionLocal)


def get_orchestrator(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: Optional[NotificationDispatcher] = Depends(get_outbox_dispatcher),
) -> WorkflowOrchestrator:
    on_commit = None
    if dispatcher is not None:
        def on_commit():
            background_tasks.add_task(dispatch_outbox, dispatcher)

    return WorkflowOrchestrator(db, on_commit=on_commit, ip_address=get_client_ip(request))
