# backend/app/services/approvals.py
"""
Finance, owner and client gates (plus the legacy single gate).

Every gate captures an immutable decision record next to the status change.
The client gate is external: an admin relays the client's answer with
``record_client_decision``; ``mark_client_email_sent`` is informational only.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.clock import utcnow
from app.models.mission_order import MissionOrder
from app.services import store
from app.services.activity import log_activity
from app.services.lifecycle import apply_event, decision_record
from app.workflow.engine import transition
from app.workflow.errors import MissionValidationError, PermissionDenied, TransitionError
from app.workflow.fees import MarginConfig, build_email_data, rebuild_email_data
from app.workflow.states import Actor, ActorRole, MissionEvent, MissionStatus

logger = logging.getLogger(__name__)

E = MissionEvent
S = MissionStatus

# Margin may be revised by finance until the owner has signed off
MARGIN_EDITABLE_STATES = (S.FINANCE_APPROVED, S.WAITING_OWNER_APPROVAL)
FINANCE_ROLES = (ActorRole.FINANCE, ActorRole.ADMIN)


def _reason(reason: Optional[str]) -> str:
    return (reason or "").strip()


# ----------------------------------------------------------------------
# Finance gate
# ----------------------------------------------------------------------
def finance_approve(
    db: Session,
    mission_id: str,
    actor: Actor,
    owner_email: str,
    margin_type: str = "percentage",
    margin_value: float = 0,
    currency: Optional[str] = None,
    billing_notes: Optional[str] = None,
) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    transition(mission.status, E.FINANCE_APPROVE, actor.role)

    if not (owner_email or "").strip():
        raise MissionValidationError("Client email address is required")
    margin = MarginConfig(type=margin_type, value=float(margin_value))
    email_data = build_email_data(
        mission.id,
        mission.type,
        mission.crew,
        mission.aircraft,
        mission.contract,
        owner_email=owner_email.strip(),
        margin=margin,
        currency=currency,
        billing_notes=billing_notes,
    )
    return apply_event(
        db,
        mission,
        E.FINANCE_APPROVE,
        actor,
        values={
            "email_data": email_data,
            "finance_decision": decision_record("approved", actor, comments=billing_notes),
        },
        stamp="finance_approved_at",
    )


def finance_reject(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(
        db,
        mission,
        E.FINANCE_REJECT,
        actor,
        payload={"reason": reason},
        values={
            "rejection_reason": _reason(reason),
            "finance_decision": decision_record("rejected", actor, reason=_reason(reason)),
        },
        stamp="rejected_at",
        reason=_reason(reason),
    )


def request_owner_approval(db: Session, mission_id: str, actor: Actor) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(db, mission, E.REQUEST_OWNER_APPROVAL, actor)


def update_margin(
    db: Session,
    mission_id: str,
    actor: Actor,
    margin_type: str,
    margin_value: float,
) -> MissionOrder:
    """Revise the margin before owner approval; fees and the client email are regenerated."""
    mission = store.fetch_mission(db, mission_id)
    status = MissionStatus(mission.status)
    if status not in MARGIN_EDITABLE_STATES:
        raise TransitionError(status, "update_margin")
    if actor.role not in FINANCE_ROLES:
        raise PermissionDenied(f"Role '{actor.role.value}' may not change the margin")
    if not mission.email_data:
        raise MissionValidationError("Mission has no fee data to revise")

    email = mission.email_data
    email_data = build_email_data(
        mission.id,
        mission.type,
        mission.crew,
        mission.aircraft,
        mission.contract,
        owner_email=email.get("owner_email") or "",
        margin=MarginConfig(type=margin_type, value=float(margin_value)),
        currency=(email.get("fees") or {}).get("currency"),
        billing_notes=email.get("billing_notes"),
    )
    store.compare_and_set(db, mission, status, {"email_data": email_data})
    log_activity(
        db,
        "margin_updated",
        f"margin set to {margin_value} ({margin_type})",
        actor.id,
        mission_id=mission.id,
        metadata={"total_with_margin": email_data["fees"]["total_with_margin"]},
    )
    return store.commit(db, mission)


# ----------------------------------------------------------------------
# Owner gate
# ----------------------------------------------------------------------
def owner_approve(db: Session, mission_id: str, actor: Actor, comments: Optional[str] = None) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    transition(mission.status, E.OWNER_APPROVE, actor.role)

    # client template is rebuilt from the fee data as it stands now
    email_data = rebuild_email_data(
        mission.email_data, mission.id, mission.type, mission.crew, mission.aircraft, mission.contract
    )
    if email_data is None:
        raise MissionValidationError("Mission has no fee data; finance approval must set it first")
    return apply_event(
        db,
        mission,
        E.OWNER_APPROVE,
        actor,
        values={
            "email_data": email_data,
            "owner_decision": decision_record("approved", actor, comments=comments),
        },
        stamp="owner_approved_at",
    )


def owner_reject(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(
        db,
        mission,
        E.OWNER_REJECT,
        actor,
        payload={"reason": reason},
        values={
            "rejection_reason": _reason(reason),
            "owner_decision": decision_record("rejected", actor, reason=_reason(reason)),
        },
        stamp="owner_rejected_at",
        reason=_reason(reason),
    )


# ----------------------------------------------------------------------
# Client gate (external decision)
# ----------------------------------------------------------------------
def mark_client_email_sent(db: Session, mission_id: str, actor: Actor) -> MissionOrder:
    """Record that the approval email went out. Status does not change."""
    mission = store.fetch_mission(db, mission_id)
    status = MissionStatus(mission.status)
    if status != S.PENDING_CLIENT_APPROVAL:
        raise TransitionError(status, "mark_client_email_sent")
    if actor.role != ActorRole.ADMIN:
        raise PermissionDenied("Only admins send client emails")
    if not mission.email_data:
        raise MissionValidationError("Mission has no client email to send")
    if mission.email_data.get("sent_at"):
        return mission

    now = utcnow()
    email_data = {**mission.email_data, "sent_at": now.isoformat()}
    store.compare_and_set(db, mission, status, {"email_data": email_data, "client_email_sent_at": now})
    log_activity(
        db,
        "client_email_sent",
        f"approval email sent to {email_data.get('owner_email')}",
        actor.id,
        mission_id=mission.id,
    )
    return store.commit(db, mission)


def record_client_decision(
    db: Session,
    mission_id: str,
    actor: Actor,
    approved: bool,
    comments: Optional[str] = None,
    reason: Optional[str] = None,
) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    now = utcnow()
    response = {
        "approved": approved,
        "responded_at": now.isoformat(),
        "recorded_by": actor.id,
        "comments": comments,
        "rejection_reason": None if approved else _reason(reason),
    }
    if approved:
        return apply_event(
            db,
            mission,
            E.CLIENT_APPROVE,
            actor,
            values={"client_response": response, "approved_at": now},
            stamp="client_approved_at",
        )
    return apply_event(
        db,
        mission,
        E.CLIENT_REJECT,
        actor,
        payload={"reason": reason},
        values={"client_response": response, "rejection_reason": _reason(reason)},
        stamp="client_rejected_at",
        reason=_reason(reason),
    )


# ----------------------------------------------------------------------
# Legacy single gate
# ----------------------------------------------------------------------
def legacy_approve(db: Session, mission_id: str, actor: Actor) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(db, mission, E.APPROVE, actor, stamp="approved_at")


def legacy_reject(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(
        db,
        mission,
        E.REJECT,
        actor,
        payload={"reason": reason},
        values={"rejection_reason": _reason(reason)},
        stamp="rejected_at",
        reason=_reason(reason),
    )


# ----------------------------------------------------------------------
# Generic approve / reject: dispatch to the gate the mission sits at
# ----------------------------------------------------------------------
def approve(
    db: Session,
    mission_id: str,
    actor: Actor,
    comments: Optional[str] = None,
    owner_email: Optional[str] = None,
    margin_type: str = "percentage",
    margin_value: float = 0,
    currency: Optional[str] = None,
    billing_notes: Optional[str] = None,
) -> MissionOrder:
    status = MissionStatus(store.fetch_mission(db, mission_id).status)
    if status == S.PENDING_FINANCE_REVIEW:
        return finance_approve(
            db, mission_id, actor, owner_email or "", margin_type, margin_value, currency, billing_notes
        )
    if status == S.FINANCE_APPROVED:
        return request_owner_approval(db, mission_id, actor)
    if status == S.WAITING_OWNER_APPROVAL:
        return owner_approve(db, mission_id, actor, comments)
    if status == S.PENDING_CLIENT_APPROVAL:
        return record_client_decision(db, mission_id, actor, True, comments=comments)
    if status == S.PENDING_APPROVAL:
        return legacy_approve(db, mission_id, actor)
    raise TransitionError(status, "approve")


def reject(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    status = MissionStatus(store.fetch_mission(db, mission_id).status)
    if status in (S.PENDING_FINANCE_REVIEW, S.FINANCE_APPROVED):
        return finance_reject(db, mission_id, actor, reason)
    if status == S.WAITING_OWNER_APPROVAL:
        return owner_reject(db, mission_id, actor, reason)
    if status == S.PENDING_CLIENT_APPROVAL:
        return record_client_decision(db, mission_id, actor, False, reason=reason)
    if status == S.PENDING_APPROVAL:
        return legacy_reject(db, mission_id, actor, reason)
    raise TransitionError(status, "reject")


# ----------------------------------------------------------------------
# Cancel / close
# ----------------------------------------------------------------------
def cancel(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(
        db,
        mission,
        E.CANCEL,
        actor,
        payload={"reason": reason},
        values={"cancellation_reason": _reason(reason)},
        stamp="cancelled_at",
        reason=_reason(reason),
    )


def close(db: Session, mission_id: str, actor: Actor) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    return apply_event(db, mission, E.CLOSE, actor, stamp="completed_at")
