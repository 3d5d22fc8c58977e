# backend/app/services/activity.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.models.activity import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    type: str,
    description: str,
    user_id: str,
    mission_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> ActivityLog:
    """Record an engine event. Joins the caller's transaction; no commit here."""
    entry = ActivityLog(
        type=type,
        description=description,
        mission_id=mission_id,
        user_id=user_id,
        meta=metadata or {},
        created_at=utcnow(),
    )
    db.add(entry)
    logger.info(f"[activity] {type} {mission_id or '-'} by {user_id}: {description}")
    return entry
