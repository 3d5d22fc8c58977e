# backend/app/schemas/notification.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    category: str
    target_user_id: Optional[str] = None
    target_role: Optional[str] = None
    entity_id: Optional[str] = None
    urgency: Optional[str] = None
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True
