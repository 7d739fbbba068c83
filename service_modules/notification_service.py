"""
Notification Service - in-app notifications for members, trainers and admins.
"""
from .base import (
    HTTPException, json, logging,
    get_db_session, NotificationORM, utc_now_iso
)
from typing import List

logger = logging.getLogger("gym_app")


class NotificationService:
    """Service for managing user notifications."""

    def add_notification(
        self,
        db,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: dict = None
    ) -> NotificationORM:
        """Stage a notification on the caller's session. The caller commits."""
        notification = NotificationORM(
            user_id=user_id,
            type=notification_type,
            title=title,
            message=message,
            data=json.dumps(data) if data else None,
            read=False,
            created_at=utc_now_iso()
        )
        db.add(notification)
        return notification

    def create_notification(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: dict = None
    ) -> dict:
        """Create a notification for a user."""
        db = get_db_session()
        try:
            notification = self.add_notification(db, user_id, notification_type, title, message, data)
            db.commit()
            db.refresh(notification)

            logger.info(f"Created notification for user {user_id}: {title}")
            return self._to_dict(notification)

        except Exception as e:
            db.rollback()
            logger.error(f"Error creating notification: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to create notification: {str(e)}")
        finally:
            db.close()

    def get_user_notifications(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[dict]:
        """Get notifications for a user, newest first."""
        db = get_db_session()
        try:
            query = db.query(NotificationORM).filter(
                NotificationORM.user_id == user_id
            )

            if unread_only:
                query = query.filter(NotificationORM.read == False)

            notifications = query.order_by(
                NotificationORM.created_at.desc(), NotificationORM.id.desc()
            ).limit(limit).all()

            return [self._to_dict(n) for n in notifications]

        finally:
            db.close()

    def get_unread_count(self, user_id: str) -> int:
        db = get_db_session()
        try:
            return db.query(NotificationORM).filter(
                NotificationORM.user_id == user_id,
                NotificationORM.read == False
            ).count()
        finally:
            db.close()

    def mark_as_read(self, notification_id: int, user_id: str) -> dict:
        db = get_db_session()
        try:
            notification = db.query(NotificationORM).filter(
                NotificationORM.id == notification_id,
                NotificationORM.user_id == user_id
            ).first()

            if not notification:
                raise HTTPException(status_code=404, detail="Notification not found")

            notification.read = True
            db.commit()

            return {"status": "success", "message": "Notification marked as read"}

        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error marking notification as read: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to mark notification: {str(e)}")
        finally:
            db.close()

    def mark_all_as_read(self, user_id: str) -> dict:
        db = get_db_session()
        try:
            updated = db.query(NotificationORM).filter(
                NotificationORM.user_id == user_id,
                NotificationORM.read == False
            ).update({"read": True}, synchronize_session=False)
            db.commit()

            return {"status": "success", "updated": updated}

        except Exception as e:
            db.rollback()
            logger.error(f"Error marking all notifications as read: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to mark notifications: {str(e)}")
        finally:
            db.close()

    def delete_notification(self, notification_id: int, user_id: str) -> dict:
        db = get_db_session()
        try:
            notification = db.query(NotificationORM).filter(
                NotificationORM.id == notification_id,
                NotificationORM.user_id == user_id
            ).first()

            if not notification:
                raise HTTPException(status_code=404, detail="Notification not found")

            db.delete(notification)
            db.commit()

            return {"status": "success", "message": "Notification deleted"}

        except HTTPException:
            raise
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting notification: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to delete notification: {str(e)}")
        finally:
            db.close()

    def _to_dict(self, n: NotificationORM) -> dict:
        return {
            "id": n.id,
            "user_id": n.user_id,
            "type": n.type,
            "title": n.title,
            "message": n.message,
            "data": json.loads(n.data) if n.data else None,
            "read": n.read,
            "created_at": n.created_at
        }


# Singleton instance
notification_service = NotificationService()


def get_notification_service() -> NotificationService:
    """Dependency injection helper."""
    return notification_service
