# tests/_harness.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.models.mission_order import MissionOrder
from app.schemas.mission_order import MissionCreate
from app.services import approvals, assignment, execution, lifecycle
from app.workflow.states import Actor, ActorRole, MissionStatus

ADMIN = Actor("admin-1", ActorRole.ADMIN)
FINANCE = Actor("fin-1", ActorRole.FINANCE)
OWNER = Actor("owner-1", ActorRole.OWNER)
CREW = Actor("crew-1", ActorRole.CREW)
OTHER_CREW = Actor("crew-99", ActorRole.CREW)


def mission_payload(
    type: str = "freelance",
    workflow: str = "gated",
    crew_type: str = "freelancer",
    start: str = "2026-03-01",
    end: str = "2026-03-05",
    salary_amount: float = 200,
    per_diem: Optional[float] = 50,
    crew_id: str = "crew-1",
) -> dict:
    return {
        "type": type,
        "workflow": workflow,
        "crew": {
            "id": crew_id,
            "name": "Jane Pilot",
            "position": "Captain",
            "type": crew_type,
            "ggid": "GG-001",
            "email": "jane@example.com",
            "cabin_crew": [{"id": "crew-2", "name": "Sam Cabin"}],
        },
        "aircraft": {"id": "ac-1", "immat": "F-HBXA", "type": "A320"},
        "flights": [
            {"id": "fl-1", "flight": "XY100", "departure": "CDG", "arrival": "NCE", "date": start, "time": "08:00"},
        ],
        "contract": {
            "start_date": start,
            "end_date": end,
            "salary_amount": salary_amount,
            "salary_currency": "EUR",
            "salary_type": "daily",
            "has_per_diem": per_diem is not None,
            "per_diem_amount": per_diem,
        },
    }


def make_mission(db: Session, **kw) -> MissionOrder:
    return lifecycle.create_mission(db, MissionCreate.model_validate(mission_payload(**kw)), ADMIN)


def to_client_approval(db: Session, mission_id: str, margin_value: float = 10) -> MissionOrder:
    approvals.finance_approve(db, mission_id, FINANCE, "client@example.com", "percentage", margin_value)
    approvals.request_owner_approval(db, mission_id, FINANCE)
    return approvals.owner_approve(db, mission_id, OWNER)


def to_approved(db: Session, mission_id: str) -> MissionOrder:
    to_client_approval(db, mission_id)
    return approvals.record_client_decision(db, mission_id, ADMIN, approved=True)


def to_in_progress(db: Session, mission_id: str) -> MissionOrder:
    to_approved(db, mission_id)
    assignment.assign_to_crew(db, mission_id, ADMIN)
    return execution.start_execution(db, mission_id, CREW)


def to_mission_over(db: Session, mission_id: str, actual_end: date = date(2026, 3, 5)) -> MissionOrder:
    to_in_progress(db, mission_id)
    return execution.complete_execution(db, mission_id, CREW, actual_end)


def status_of(db: Session, mission_id: str) -> MissionStatus:
    db.expire_all()
    return MissionStatus(db.get(MissionOrder, mission_id).status)
