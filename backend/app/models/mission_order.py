# backend/app/models/mission_order.py
from datetime import date, datetime
from sqlalchemy import String, Integer, Date, DateTime, Boolean, JSON, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.clock import utcnow
from app.db import Base

# Lifecycle timestamps; each is written once and never cleared (see services.store)
WRITE_ONCE_TIMESTAMPS = (
    "finance_approved_at",
    "owner_approved_at",
    "owner_rejected_at",
    "client_email_sent_at",
    "client_approved_at",
    "client_rejected_at",
    "approved_at",
    "rejected_at",
    "assigned_to_crew_at",
    "execution_started_at",
    "execution_completed_at",
    "validation_requested_at",
    "validated_at",
    "date_modification_requested_at",
    "completed_at",
    "cancelled_at",
)


class MissionOrder(Base):
    __tablename__ = "mission_orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)  # MO-<epoch-ms>
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    workflow: Mapped[str] = mapped_column(String(16), nullable=False, default="gated")
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Snapshots captured at creation
    crew: Mapped[dict] = mapped_column(JSON, nullable=False)
    aircraft: Mapped[dict] = mapped_column(JSON, nullable=False)
    flights: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    contract: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Indexed copy of crew["id"] for per-crew listing and the assignment scan
    crew_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    email_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    finance_decision: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    owner_decision: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    client_response: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    validation: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    service_invoice: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    actual_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    was_extended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    extension_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    finance_approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    owner_approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    owner_rejected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    client_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    client_approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    client_rejected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    assigned_to_crew_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    execution_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    execution_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    validation_requested_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    date_modification_requested_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


# assignment scan: approved missions not yet handed to crew
Index("ix_mission_orders_status_assigned", MissionOrder.status, MissionOrder.assigned_to_crew_at)
