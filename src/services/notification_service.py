from typing import Optional
from sqlalchemy.orm import Session
import logging

from src.models.notification import Notification
from src.core.constants import NotificationType, NotificationCategory

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    def notify(
        db: Session,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.INFO,
        category: NotificationCategory = NotificationCategory.TRANSACTION,
        metadata: Optional[dict] = None,
    ) -> Optional[Notification]:
        """
        Store an in-app notification for the user.

        Fire-and-forget: a failure is logged and rolled back, never raised,
        so callers must commit their own work before notifying.
        """
        try:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=NotificationType(type).value,
                category=NotificationCategory(category).value,
                meta=metadata or {},
            )
            db.add(notification)
            db.commit()
            return notification
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to notify user {user_id} ({title}): {str(e)}")
            return None

    @staticmethod
    def list_notifications(db: Session, user_id: str, unread_only: bool = False, limit: int = 50):
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def mark_read(db: Session, user_id: str, notification_id: int) -> Optional[Notification]:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()

        if not notification:
            return None

        notification.is_read = True
        db.commit()
        db.refresh(notification)
        return notification
