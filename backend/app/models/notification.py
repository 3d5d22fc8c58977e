# backend/app/models/notification.py
from datetime import datetime
from sqlalchemy import String, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.clock import utcnow
from app.db import Base


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # info|warning|error|success
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)

    target_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_role: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # mission id for mission-scoped notices; used for email_pending dedup
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    urgency: Mapped[str | None] = mapped_column(String(16), nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


Index("ix_notifications_entity_category", Notification.entity_id, Notification.category)
Index("ix_notifications_target", Notification.target_user_id, Notification.target_role)
