"""
Base service utilities and shared imports.
All services should import from here for common functionality.
"""
from fastapi import HTTPException
import uuid
import json
import logging
from datetime import date, datetime, timedelta

from database import get_db_session, Base, engine
from models_orm import (
    ProfileORM, MemberORM, TrainerORM,
    PackageTypeORM, PackageORM, MemberPackageORM, PackageRequestORM,
    SessionORM, BookingORM,
    NotificationORM, EmailLogORM, ActivityLogORM
)

# Re-export for convenience
__all__ = [
    'HTTPException', 'uuid', 'json', 'logging', 'date', 'datetime', 'timedelta',
    'get_db_session', 'Base', 'engine', 'utc_now_iso', 'to_iso', 'today_iso',
    'ProfileORM', 'MemberORM', 'TrainerORM',
    'PackageTypeORM', 'PackageORM', 'MemberPackageORM', 'PackageRequestORM',
    'SessionORM', 'BookingORM',
    'NotificationORM', 'EmailLogORM', 'ActivityLogORM'
]

logger = logging.getLogger("gym_app")


def utc_now_iso() -> str:
    """Current UTC time in the storage format used by every timestamp column."""
    return datetime.utcnow().replace(microsecond=0).isoformat()


def to_iso(value: datetime) -> str:
    """Normalize a datetime to naive UTC, seconds precision."""
    if value.tzinfo is not None:
        value = (value - value.utcoffset()).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat()


def today_iso() -> str:
    return datetime.utcnow().date().isoformat()
