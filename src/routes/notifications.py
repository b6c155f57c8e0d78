# src/routes/notifications.py
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List

from src.core.database import get_db
from src.core.auth_dependencies import get_current_user, CurrentUser
from src.schemas.notification import NotificationResponse
from src.services.notification_service import NotificationService


notification_router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@notification_router.get("/", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return NotificationService.list_notifications(db, current_user.id, unread_only=unread_only, limit=limit)


@notification_router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = NotificationService.mark_read(db, current_user.id, notification_id)
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notification with ID {notification_id} not found"
        )
    return notification
