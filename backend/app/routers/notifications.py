# backend/app/routers/notifications.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_actor
from app.schemas.notification import NotificationOut
from app.services import notifications
from app.workflow.states import Actor

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
def list_notifications(
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Notifications addressed to the caller, their role, or everyone."""
    return notifications.list_for(db, actor, unread_only=unread_only)


@router.post("/read-all")
def mark_all_read(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return {"updated": notifications.mark_all_read(db, actor)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    n = notifications.mark_read(db, notification_id, actor)
    if n is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    return n
