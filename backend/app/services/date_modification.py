# backend/app/services/date_modification.py
"""
Post-assignment date changes.

A request snapshots the contract dates and the status the mission was in;
resolving it (either way) returns the mission to that recorded status.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.clock import utcnow
from app.models.date_modification import DateModification
from app.models.mission_order import MissionOrder
from app.services import store
from app.services.lifecycle import apply_event, require_crew_member
from app.workflow.engine import transition
from app.workflow.errors import ConflictError
from app.workflow.fees import rebuild_email_data
from app.workflow.states import Actor, MissionEvent, MissionStatus

logger = logging.getLogger(__name__)

E = MissionEvent


def open_request(db: Session, mission_id: str) -> Optional[DateModification]:
    return db.scalars(
        select(DateModification).where(
            DateModification.mission_id == mission_id,
            DateModification.status == "pending",
        )
    ).first()


def request_date_modification(
    db: Session,
    mission_id: str,
    actor: Actor,
    new_start_date: date,
    new_end_date: date,
    reason: str,
) -> MissionOrder:
    mission = store.fetch_mission(db, mission_id)
    if mission.status == MissionStatus.PENDING_DATE_MODIFICATION.value or open_request(db, mission_id):
        raise ConflictError("A date modification is already pending for this mission")
    require_crew_member(mission, actor)

    payload = {"reason": reason, "new_start_date": new_start_date, "new_end_date": new_end_date}
    transition(mission.status, E.REQUEST_DATE_MODIFICATION, actor.role, payload)

    contract = mission.contract
    db.add(
        DateModification(
            mission_id=mission.id,
            status="pending",
            original_start_date=date.fromisoformat(contract["start_date"]),
            original_end_date=date.fromisoformat(contract["end_date"]),
            new_start_date=new_start_date,
            new_end_date=new_end_date,
            reason=reason.strip(),
            previous_status=mission.status,
            requested_by=actor.id,
            requested_at=utcnow(),
        )
    )
    try:
        return apply_event(
            db,
            mission,
            E.REQUEST_DATE_MODIFICATION,
            actor,
            payload=payload,
            stamp="date_modification_requested_at",
            reason=reason.strip(),
        )
    except IntegrityError:
        # lost the race against another request for the same mission
        db.rollback()
        raise ConflictError("A date modification is already pending for this mission")


def _with_dates(contract: dict, start: date, end: date) -> dict:
    return {**contract, "start_date": start.isoformat(), "end_date": end.isoformat()}


def approve_date_modification(
    db: Session,
    mission_id: str,
    actor: Actor,
    comment: Optional[str] = None,
) -> MissionOrder:
    """Overwrite the contract dates, regenerate derived fees and return to the prior status."""
    mission = store.fetch_mission(db, mission_id)
    dm = open_request(db, mission_id)
    payload = {"previous_status": dm.previous_status if dm else None}
    transition(mission.status, E.APPROVE_DATE_MODIFICATION, actor.role, payload)

    contract = _with_dates(mission.contract, dm.new_start_date, dm.new_end_date)
    values = {"contract": contract}
    if mission.email_data:
        values["email_data"] = rebuild_email_data(
            mission.email_data, mission.id, mission.type, mission.crew, mission.aircraft, contract
        )

    dm.status = "approved"
    dm.resolved_by = actor.id
    dm.resolved_at = utcnow()
    dm.approver_comment = comment
    return apply_event(db, mission, E.APPROVE_DATE_MODIFICATION, actor, payload=payload, values=values)


def reject_date_modification(db: Session, mission_id: str, actor: Actor, reason: str) -> MissionOrder:
    """Keep the original contract dates and return to the prior status."""
    mission = store.fetch_mission(db, mission_id)
    dm = open_request(db, mission_id)
    payload = {"previous_status": dm.previous_status if dm else None, "reason": reason}
    transition(mission.status, E.REJECT_DATE_MODIFICATION, actor.role, payload)

    contract = _with_dates(mission.contract, dm.original_start_date, dm.original_end_date)

    dm.status = "rejected"
    dm.resolved_by = actor.id
    dm.resolved_at = utcnow()
    dm.rejection_reason = reason.strip()
    return apply_event(
        db,
        mission,
        E.REJECT_DATE_MODIFICATION,
        actor,
        payload=payload,
        values={"contract": contract},
        reason=reason.strip(),
    )
