"""
Notification inbox API Endpoints
"""
from typing import List, Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.v1.endpoints.auth import get_current_caller
from app.core.security import Caller
from app.db.session import atomic, get_db
from app.exceptions import NotFoundError
from app.schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse
from app.services import notification_service

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    filter: Literal["all", "unread", "read"] = Query("all"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return notification_service.list_inbox(db, caller.id, filter)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    return UnreadCountResponse(unread=notification_service.unread_count(db, caller.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    with atomic(db):
        updated = notification_service.mark_all_read(db, caller.id)
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    caller: Caller = Depends(get_current_caller),
):
    with atomic(db):
        notification = notification_service.mark_read(db, caller.id, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
    return notification
