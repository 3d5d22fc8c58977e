# backend/app/services/notifications.py
"""
Notification dispatcher.

Transition notices are looked up in ``TRANSITION_NOTICES`` and fanned out to
the admin role and/or every crew member on the mission. Time-based notices
(client email still unsent) escalate normal -> urgent -> critical and are
only re-emitted when the urgency strictly increases for the same
(mission id, category) pair.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app import settings
from app.clock import utcnow
from app.models.mission_order import MissionOrder
from app.models.notification import Notification
from app.workflow.crew import crew_member_ids
from app.workflow.states import Actor, ActorRole, MissionEvent, MissionStatus, status_label

logger = logging.getLogger(__name__)

E = MissionEvent

URGENCY_RANK = {"normal": 0, "urgent": 1, "critical": 2}
URGENCY_TYPE = {"normal": "info", "urgent": "warning", "critical": "error"}

EMAIL_PENDING = "email_pending"


def add_notification(
    db: Session,
    type: str,
    title: str,
    message: str,
    category: str,
    target_user_id: Optional[str] = None,
    target_role: Optional[str] = None,
    metadata: Optional[dict] = None,
    urgency: Optional[str] = None,
    entity_id: Optional[str] = None,
) -> Notification:
    meta = dict(metadata or {})
    n = Notification(
        type=type,
        title=title,
        message=message,
        category=category,
        target_user_id=target_user_id,
        target_role=target_role,
        entity_id=entity_id or meta.get("mission_id"),
        urgency=urgency,
        meta=meta,
        read=False,
        created_at=utcnow(),
    )
    db.add(n)
    return n


def urgency_for(hours: float) -> str:
    if hours >= settings.CRITICAL_AFTER_HOURS:
        return "critical"
    if hours >= settings.URGENT_AFTER_HOURS:
        return "urgent"
    return "normal"


# ----------------------------------------------------------------------
# Transition notices
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Notice:
    audience: str  # "admin" | "crew" | "owner"
    type: str
    category: str
    title: str
    message: str


TRANSITION_NOTICES: dict[MissionEvent, tuple[Notice, ...]] = {
    E.FINANCE_APPROVE: (
        Notice("admin", "info", "mission", "Finance approved", "Mission {id} passed finance review."),
    ),
    E.FINANCE_REJECT: (
        Notice("admin", "warning", "mission", "Finance rejected", "Mission {id} was rejected by finance: {reason}"),
    ),
    E.REQUEST_OWNER_APPROVAL: (
        Notice("owner", "info", "mission", "Owner approval required", "Mission {id} is waiting for your approval."),
    ),
    E.OWNER_APPROVE: (
        Notice(
            "admin", "info", "mission", "Owner approved",
            "Mission {id} was approved by the owner. The client email is ready to send.",
        ),
    ),
    E.OWNER_REJECT: (
        Notice("admin", "warning", "mission", "Owner rejected", "Mission {id} was rejected by the owner: {reason}"),
    ),
    E.CLIENT_APPROVE: (
        Notice("admin", "success", "mission", "Client approved", "The client approved mission {id}."),
    ),
    E.CLIENT_REJECT: (
        Notice("admin", "warning", "mission", "Client rejected", "The client rejected mission {id}: {reason}"),
    ),
    E.APPROVE: (
        Notice("admin", "success", "mission", "Mission approved", "Mission {id} was approved."),
    ),
    E.REJECT: (
        Notice("crew", "warning", "mission", "Mission rejected", "Mission {id} was rejected: {reason}"),
    ),
    E.ASSIGN_TO_CREW: (
        Notice(
            "crew", "success", "mission_assignment", "New mission assigned",
            "Mission {id} ({aircraft}) from {start} to {end} has been assigned to you.",
        ),
    ),
    E.START_EXECUTION: (
        Notice("admin", "info", "mission", "Mission started", "{crew} started mission {id}."),
    ),
    E.COMPLETE_EXECUTION: (
        Notice("admin", "info", "mission", "Mission completed", "{crew} completed mission {id}."),
    ),
    E.REQUEST_VALIDATION: (
        Notice(
            "crew", "warning", "validation", "Validation required",
            "Mission {id} has ended. Please confirm your bank details and validate it.",
        ),
    ),
    E.SUBMIT_VALIDATION: (
        Notice("admin", "success", "validation", "Mission validated by crew", "{crew} validated mission {id} ({status})."),
    ),
    E.ATTACH_INVOICE: (
        Notice("admin", "success", "validation", "Service invoice attached", "Invoice attached to mission {id}; it is now validated."),
    ),
    E.REQUEST_DATE_MODIFICATION: (
        Notice(
            "admin", "warning", "date_modification", "Date modification requested",
            "{crew} asked to move mission {id}: {reason}",
        ),
    ),
    E.APPROVE_DATE_MODIFICATION: (
        Notice(
            "crew", "success", "date_modification", "Date modification approved",
            "New dates for mission {id}: {start} to {end}.",
        ),
    ),
    E.REJECT_DATE_MODIFICATION: (
        Notice(
            "crew", "warning", "date_modification", "Date modification rejected",
            "Your date change for mission {id} was rejected: {reason}",
        ),
    ),
    E.CANCEL: (
        Notice("crew", "warning", "mission", "Mission cancelled", "Mission {id} was cancelled: {reason}"),
        Notice("admin", "warning", "mission", "Mission cancelled", "Mission {id} was cancelled: {reason}"),
    ),
    E.CLOSE: (
        Notice("admin", "success", "mission", "Mission closed", "Mission {id} is closed."),
    ),
}


def _fields(mission: MissionOrder, reason: Optional[str]) -> dict:
    crew = mission.crew or {}
    contract = mission.contract or {}
    aircraft = mission.aircraft or {}
    return {
        "id": mission.id,
        "crew": crew.get("name") or "Crew",
        "aircraft": aircraft.get("immat") or "aircraft TBD",
        "start": contract.get("start_date"),
        "end": contract.get("end_date"),
        "status": status_label(MissionStatus(mission.status)),
        "reason": reason or "-",
    }


def notify_transition(
    db: Session,
    mission: MissionOrder,
    event: MissionEvent,
    actor: Actor,
    reason: Optional[str] = None,
) -> int:
    """Fan out the notices for ``event``; per-recipient failures are summarised, not raised."""
    notices = TRANSITION_NOTICES.get(MissionEvent(event), ())
    fields = _fields(mission, reason)
    meta = {
        "mission_id": mission.id,
        "event": MissionEvent(event).value,
        "status": mission.status,
        "actor_id": actor.id,
        "action_url": f"/missions/{mission.id}",
    }

    sent, failures, total = 0, [], 0
    for notice in notices:
        title, message = notice.title, notice.message.format(**fields)
        if notice.audience == "crew":
            recipients = crew_member_ids(mission.crew)
        else:
            recipients = [None]
        for user_id in recipients:
            total += 1
            try:
                add_notification(
                    db,
                    notice.type,
                    title,
                    message,
                    notice.category,
                    target_user_id=user_id,
                    target_role=None if user_id else notice.audience,
                    metadata=meta,
                )
                sent += 1
            except Exception as e:
                logger.exception(f"[notifications] {mission.id}: failed to notify {user_id or notice.audience}")
                failures.append(f"{user_id or notice.audience}: {e}")

    if failures:
        report_batch_failures(db, f"notifications for {mission.id}", failures, total)
    return sent


# ----------------------------------------------------------------------
# Client email escalation
# ----------------------------------------------------------------------
def last_urgency(db: Session, entity_id: str, category: str) -> Optional[str]:
    return db.scalars(
        select(Notification.urgency)
        .where(Notification.entity_id == entity_id, Notification.category == category)
        .where(Notification.urgency.is_not(None))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(1)
    ).first()


def _pending_since(mission: MissionOrder) -> datetime:
    return mission.owner_approved_at or mission.finance_approved_at or mission.created_at


def _email_title(urgency: str, hours: int) -> str:
    if urgency == "critical":
        return f"CRITICAL: client email pending for {hours}h"
    if urgency == "urgent":
        return f"Urgent: client email pending for {hours}h"
    return "Client email ready to send"


def scan_pending_client_emails(db: Session, now: Optional[datetime] = None) -> dict:
    """
    Emit or escalate ``email_pending`` notices for missions whose client
    email has not been sent. Commits its own work.
    """
    now = now or utcnow()
    rows = db.scalars(
        select(MissionOrder).where(MissionOrder.status == MissionStatus.PENDING_CLIENT_APPROVAL.value)
    ).all()

    scanned, notified, failures = 0, 0, []
    for m in rows:
        email = m.email_data or {}
        if not email.get("owner_email") or email.get("sent_at"):
            continue
        scanned += 1
        try:
            hours = max(0.0, (now - _pending_since(m)).total_seconds() / 3600)
            urgency = urgency_for(hours)
            last = last_urgency(db, m.id, EMAIL_PENDING)
            if last is not None and URGENCY_RANK.get(last, -1) >= URGENCY_RANK[urgency]:
                continue

            fees = email.get("fees") or {}
            add_notification(
                db,
                URGENCY_TYPE[urgency],
                _email_title(urgency, int(hours)),
                f"The approval email for mission {m.id} has not been sent to {email['owner_email']} yet.",
                EMAIL_PENDING,
                target_role=ActorRole.ADMIN.value,
                urgency=urgency,
                metadata={
                    "mission_id": m.id,
                    "client_email": email["owner_email"],
                    "urgency": urgency,
                    "hours_pending": round(hours, 1),
                    "total_with_margin": fees.get("total_with_margin"),
                    "currency": fees.get("currency"),
                    "crew_name": (m.crew or {}).get("name"),
                    "aircraft": (m.aircraft or {}).get("immat"),
                    "action": "send_client_email",
                    "action_url": f"/missions/{m.id}/client-email",
                },
            )
            db.flush()
            notified += 1
        except Exception as e:
            db.rollback()
            logger.exception(f"[notifications] email scan failed for {m.id}")
            failures.append(f"{m.id}: {e}")
            continue
        db.commit()

    if failures:
        report_batch_failures(db, "Client email scan", failures, scanned)
        db.commit()
    if notified:
        logger.info(f"[notifications] email scan: {notified} notice(s) for {scanned} pending email(s)")
    return {"scanned": scanned, "notified": notified, "failed": len(failures)}


def report_batch_failures(db: Session, job: str, failures: list[str], total: int) -> Optional[Notification]:
    """One admin summary per batch instead of one alert per failed item."""
    if not failures:
        return None
    logger.error(f"[notifications] {job}: {len(failures)} of {total} item(s) failed")
    shown = "; ".join(failures[:5])
    more = f" (+{len(failures) - 5} more)" if len(failures) > 5 else ""
    return add_notification(
        db,
        "error",
        f"{job}: {len(failures)} of {total} failed",
        f"{shown}{more}",
        "system",
        target_role=ActorRole.ADMIN.value,
        metadata={"job": job, "failures": failures, "total": total},
    )


# ----------------------------------------------------------------------
# Inbox
# ----------------------------------------------------------------------
def _visible_to(actor: Actor):
    return or_(
        Notification.target_user_id == actor.id,
        Notification.target_role == actor.role.value,
        (Notification.target_user_id.is_(None) & Notification.target_role.is_(None)),
    )


def list_for(db: Session, actor: Actor, unread_only: bool = False, limit: int = 200) -> list[Notification]:
    q = select(Notification).where(_visible_to(actor))
    if unread_only:
        q = q.where(Notification.read.is_(False))
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(db.scalars(q).all())


def mark_read(db: Session, notification_id: int, actor: Actor) -> Optional[Notification]:
    n = db.scalars(
        select(Notification).where(Notification.id == notification_id, _visible_to(actor))
    ).first()
    if n is None:
        return None
    n.read = True
    db.commit()
    db.refresh(n)
    return n


def mark_all_read(db: Session, actor: Actor) -> int:
    res = db.execute(
        update(Notification)
        .where(_visible_to(actor), Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return res.rowcount or 0
