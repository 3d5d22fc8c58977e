# backend/app/routers/missions.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.db import get_db
from app.dependencies import get_actor
from app.models.mission_order import MissionOrder
from app.schemas.mission_order import (
    ApproveIn,
    AssignIn,
    AssignmentOut,
    CheckValidationOut,
    ClientDecisionIn,
    CommentIn,
    CompleteExecutionIn,
    DateModificationApproveIn,
    DateModificationIn,
    FinanceApproveIn,
    MarginIn,
    MissionCreate,
    MissionOut,
    ReasonIn,
    ServiceInvoice,
    ValidationIn,
)
from app.services import approvals, assignment, date_modification, execution, lifecycle, store
from app.services.validation_checker import check_for_validation
from app.workflow.crew import is_crew_member
from app.workflow.engine import allowed_events
from app.workflow.states import Actor, ActorRole

router = APIRouter(prefix="/missions", tags=["missions"])
logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _out(db: Session, mission: MissionOrder) -> MissionOut:
    return store.to_out(db, mission)


def _visible(mission: MissionOut, actor: Actor) -> bool:
    if actor.role != ActorRole.CREW:
        return True
    return is_crew_member(mission.crew.model_dump(), actor.id)


# ----------------------------------------------------------------------
# Create / read
# ----------------------------------------------------------------------
@router.post("", response_model=MissionOut, status_code=201)
def create_mission(payload: MissionCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    mission = lifecycle.create_mission(db, payload, actor)
    return _out(db, mission)


@router.get("", response_model=List[MissionOut])
def list_missions(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    crew_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """List missions, newest first. Crew members only see missions they are on."""
    rows = store.read_missions(db, status=status, type_=type, crew_id=crew_id)
    return [m for m in rows if _visible(m, actor)]


@router.post("/check-validation", response_model=CheckValidationOut)
def check_validation(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Foreground trigger for the periodic validation check (e.g. the app regained focus). Admin only."""
    if actor.role != ActorRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can run the validation check")
    return check_for_validation(db)


@router.get("/{mission_id}", response_model=MissionOut)
def get_mission(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    mission = store.read_mission(db, mission_id)
    if not _visible(mission, actor):
        raise HTTPException(status_code=403, detail="You are not a crew member on this mission")
    return mission


@router.get("/{mission_id}/allowed-events", response_model=List[str])
def get_allowed_events(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    mission = store.read_mission(db, mission_id)
    if not _visible(mission, actor):
        raise HTTPException(status_code=403, detail="You are not a crew member on this mission")
    return [e.value for e in allowed_events(mission.status, actor.role)]


# ----------------------------------------------------------------------
# Approval gates
# ----------------------------------------------------------------------
@router.post("/{mission_id}/approve", response_model=MissionOut)
def approve_mission(
    mission_id: str,
    payload: Optional[ApproveIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Approve at whichever gate the mission currently waits."""
    mission = approvals.approve(db, mission_id, actor, **(payload or ApproveIn()).model_dump())
    return _out(db, mission)


@router.post("/{mission_id}/reject", response_model=MissionOut)
def reject_mission(mission_id: str, payload: ReasonIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    mission = approvals.reject(db, mission_id, actor, payload.reason)
    return _out(db, mission)


@router.post("/{mission_id}/finance-approve", response_model=MissionOut)
def finance_approve(
    mission_id: str,
    payload: FinanceApproveIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    mission = approvals.finance_approve(
        db,
        mission_id,
        actor,
        owner_email=payload.owner_email,
        margin_type=payload.margin_type,
        margin_value=payload.margin_value,
        currency=payload.currency,
        billing_notes=payload.billing_notes,
    )
    return _out(db, mission)


@router.post("/{mission_id}/finance-reject", response_model=MissionOut)
def finance_reject(mission_id: str, payload: ReasonIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, approvals.finance_reject(db, mission_id, actor, payload.reason))


@router.post("/{mission_id}/request-owner-approval", response_model=MissionOut)
def request_owner_approval(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, approvals.request_owner_approval(db, mission_id, actor))


@router.patch("/{mission_id}/margin", response_model=MissionOut)
def update_margin(mission_id: str, payload: MarginIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    mission = approvals.update_margin(db, mission_id, actor, payload.margin_type, payload.margin_value)
    return _out(db, mission)


@router.post("/{mission_id}/owner-approve", response_model=MissionOut)
def owner_approve(
    mission_id: str,
    payload: Optional[CommentIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(db, approvals.owner_approve(db, mission_id, actor, payload.comments if payload else None))


@router.post("/{mission_id}/owner-reject", response_model=MissionOut)
def owner_reject(mission_id: str, payload: ReasonIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, approvals.owner_reject(db, mission_id, actor, payload.reason))


@router.post("/{mission_id}/client-email-sent", response_model=MissionOut)
def client_email_sent(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Informational: the approval email went out. Status is unchanged."""
    return _out(db, approvals.mark_client_email_sent(db, mission_id, actor))


@router.post("/{mission_id}/client-decision", response_model=MissionOut)
def client_decision(
    mission_id: str,
    payload: ClientDecisionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """An admin relays the client's answer, received outside the system."""
    mission = approvals.record_client_decision(
        db,
        mission_id,
        actor,
        approved=payload.approved,
        comments=payload.comments,
        reason=payload.rejection_reason,
    )
    return _out(db, mission)


@router.post("/{mission_id}/cancel", response_model=MissionOut)
def cancel_mission(mission_id: str, payload: ReasonIn, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, approvals.cancel(db, mission_id, actor, payload.reason))


@router.post("/{mission_id}/close", response_model=MissionOut)
def close_mission(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, approvals.close(db, mission_id, actor))


# ----------------------------------------------------------------------
# Assignment & execution
# ----------------------------------------------------------------------
@router.post("/{mission_id}/assign-to-crew", response_model=AssignmentOut)
def assign_to_crew(
    mission_id: str,
    payload: Optional[AssignIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    result = assignment.assign_to_crew(db, mission_id, actor, generate_contract=payload.generate_contract if payload else True)
    return {"mission": _out(db, result.mission), "contract_generated": result.contract_generated}


@router.post("/{mission_id}/start-execution", response_model=MissionOut)
def start_execution(mission_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return _out(db, execution.start_execution(db, mission_id, actor))


@router.post("/{mission_id}/complete-execution", response_model=MissionOut)
def complete_execution(
    mission_id: str,
    payload: CompleteExecutionIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    mission = execution.complete_execution(
        db, mission_id, actor, payload.actual_end_date, payload.extension_reason
    )
    return _out(db, mission)


@router.post("/{mission_id}/validate", response_model=MissionOut)
def validate_mission(
    mission_id: str,
    payload: ValidationIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(db, execution.submit_validation(db, mission_id, actor, payload))


@router.put("/{mission_id}/invoice", response_model=MissionOut)
def update_service_invoice(
    mission_id: str,
    payload: ServiceInvoice,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(db, execution.update_service_invoice(db, mission_id, actor, payload))


# ----------------------------------------------------------------------
# Date modification
# ----------------------------------------------------------------------
@router.post("/{mission_id}/date-modification", response_model=MissionOut)
def request_date_modification(
    mission_id: str,
    payload: DateModificationIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    mission = date_modification.request_date_modification(
        db, mission_id, actor, payload.new_start_date, payload.new_end_date, payload.reason
    )
    return _out(db, mission)


@router.post("/{mission_id}/date-modification/approve", response_model=MissionOut)
def approve_date_modification(
    mission_id: str,
    payload: Optional[DateModificationApproveIn] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(db, date_modification.approve_date_modification(db, mission_id, actor, payload.comment if payload else None))


@router.post("/{mission_id}/date-modification/reject", response_model=MissionOut)
def reject_date_modification(
    mission_id: str,
    payload: ReasonIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _out(db, date_modification.reject_date_modification(db, mission_id, actor, payload.reason))
