"""
Activity Service - audit trail shown on the admin activity page.
"""
from .base import json, logging, get_db_session, ActivityLogORM, utc_now_iso
from typing import List, Optional

logger = logging.getLogger("gym_app")


class ActivityService:

    def log_activity(self, db, user_id: Optional[str], action: str, target_type: str,
                     target_id: str, details: dict = None) -> ActivityLogORM:
        """Stage an activity row on the caller's session. The caller commits."""
        entry = ActivityLogORM(
            user_id=user_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            details=json.dumps(details or {}),
            created_at=utc_now_iso()
        )
        db.add(entry)
        return entry

    def get_recent_activity(self, limit: int = 50, action: str = None) -> List[dict]:
        db = get_db_session()
        try:
            query = db.query(ActivityLogORM)
            if action:
                query = query.filter(ActivityLogORM.action == action)
            rows = query.order_by(ActivityLogORM.created_at.desc(), ActivityLogORM.id.desc()).limit(limit).all()
            return [
                {
                    "id": row.id,
                    "user_id": row.user_id,
                    "action": row.action,
                    "target_type": row.target_type,
                    "target_id": row.target_id,
                    "details": json.loads(row.details) if row.details else {},
                    "created_at": row.created_at
                }
                for row in rows
            ]
        finally:
            db.close()


activity_service = ActivityService()


def get_activity_service() -> ActivityService:
    return activity_service
